import os


def _env(name: str, *fallbacks: str, default=None):
    """Read an env var, falling back to legacy names used by the web frontend."""
    for key in (name,) + fallbacks:
        value = os.getenv(key)
        if value:
            return value
    return default


# ✅ Database
DATABASE_URL = _env("DATABASE_URL", default="sqlite:///./genpire.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security (Supabase-issued JWTs)
SECRET_KEY = _env("SECRET_KEY", "SUPABASE_JWT_SECRET")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ Polar
POLAR_ACCESS_TOKEN = os.getenv("POLAR_ACCESS_TOKEN")
POLAR_SERVER = _env("POLAR_SERVER", "NEXT_PUBLIC_POLAR_SERVER", default="sandbox")
POLAR_WEBHOOK_SECRET = os.getenv("POLAR_WEBHOOK_SECRET")

# ✅ PayPal
PAYPAL_CLIENT_ID = _env("PAYPAL_CLIENT_ID", "NEXT_PUBLIC_PAYPAL_CLIENT_ID")
PAYPAL_CLIENT_SECRET = _env("PAYPAL_CLIENT_SECRET", "NEXT_PUBLIC_PAYPAL_CLIENT_SECRET")
PAYPAL_API_BASE_URL = _env("PAYPAL_API_BASE_URL", "NEXT_PUBLIC_PAYPAL_API_BASE_URL")
# "sandbox" or "live"; picks the billing plan ids used for new subscriptions
PAYPAL_ENVIRONMENT = _env("PAYPAL_ENVIRONMENT", default="live")
SITE_URL = _env("SITE_URL", "NEXT_PUBLIC_SITE_URL", default="https://www.genpire.com")

PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "15"))

# ✅ Email
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Genpire <noreply@genpire.com>")
DASHBOARD_URL = _env("DASHBOARD_URL", "FRONTEND_URL", default="https://www.genpire.com/dashboard")
OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
