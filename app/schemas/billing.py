"""
Pydantic schemas for subscription purchase and cancellation endpoints.
"""
from typing import Optional
from pydantic import BaseModel, Field


class PayPalSubscriptionRequest(BaseModel):
    """Body posted by the PayPal button once the buyer approves a subscription."""
    subscriptionID: str = Field(..., min_length=1, description="PayPal subscription id")
    price: Optional[float] = Field(None, description="Price shown at checkout")
    membership: str = Field(..., description="Membership tier: saver, pro or super")
    planType: str = Field(..., description="Billing interval: monthly or yearly")

    class Config:
        json_schema_extra = {
            "example": {
                "subscriptionID": "I-BW452GLLEP1G",
                "price": 39.9,
                "membership": "pro",
                "planType": "monthly"
            }
        }


class PayPalSubscriptionResponse(BaseModel):
    """Response for a recorded PayPal subscription."""
    success: bool = Field(..., description="Always true on success")


class CancelSubscriptionRequest(BaseModel):
    """Request schema for cancelling a subscription."""
    subscriptionId: Optional[str] = Field(None, description="Provider subscription id")
    reason: Optional[str] = Field(None, description="Optional cancellation reason sent to PayPal")

    class Config:
        json_schema_extra = {
            "example": {
                "subscriptionId": "I-BW452GLLEP1G",
                "reason": "Switching plans"
            }
        }


class CancelSubscriptionResponse(BaseModel):
    """Result of a cancellation; success may carry a warning in error."""
    success: bool = Field(..., description="Whether the provider accepted the cancellation")
    error: Optional[str] = Field(None, description="Failure reason, or a warning on success")
    expiresAt: Optional[str] = Field(None, description="ISO-8601 end of the paid period")
    provider: Optional[str] = Field(None, description="polar or paypal")

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "expiresAt": "2025-02-01T12:00:00+00:00",
                "provider": "paypal"
            }
        }


class PayPalCheckoutRequest(BaseModel):
    """Price and description of the order or subscription to start at PayPal."""
    price: Optional[float] = Field(None, description="Checkout price in USD; subscriptions must match a PayPal plan")
    description: Optional[str] = Field(None, description="Line description shown to the buyer")

    class Config:
        json_schema_extra = {
            "example": {
                "price": 39.9,
                "description": "Genpire Pro Plan (Monthly)"
            }
        }


class PayPalCheckoutResponse(BaseModel):
    """Provider id the PayPal JS button approves next."""
    success: bool = Field(..., description="Always true on success")
    id: str = Field(..., description="PayPal order id or subscription id")


class BillingErrorResponse(BaseModel):
    """Error body for the PayPal endpoints."""
    error: str = Field(..., description="Error message")
