import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import config
from app.core.logging_config import setup_logging

# ✅ Import All API Routes
from app.api.routes import credits, subscriptions, paypal_checkout, paypal_subscription, polar_webhook, health
from app.payments.registry import reset_payment_providers

setup_logging(log_level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.RUN_MIGRATIONS:
        from app.db.migrate import run_migrations
        run_migrations()
    logger.info("Genpire billing API started")
    yield
    # Close pooled HTTP clients held by the provider adapters
    reset_payment_providers()


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Genpire Billing", lifespan=lifespan)

# ✅ CORS: only the web frontend calls these endpoints from a browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # local frontend
        "http://127.0.0.1:3000",
        "https://www.genpire.com",
        "https://genpire.com",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(credits.router)
app.include_router(subscriptions.router)
app.include_router(paypal_checkout.router)
app.include_router(paypal_subscription.router)
app.include_router(polar_webhook.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"status": "Genpire billing API running"}
