"""
Pydantic schemas for the credits summary endpoint.
"""
from typing import Optional
from pydantic import BaseModel, Field


class UserCreditsData(BaseModel):
    """Credits and plan summary shown on the billing page."""
    credits: int = Field(..., description="Sum of credits across all active records")
    membershipStatus: str = Field(..., description="active, expired, or inactive when the user never purchased")
    planType: str = Field(..., description="monthly, yearly, one_time, or none")
    canBuy: bool = Field(True, description="Whether the user may purchase (always true)")
    hasEverHadSubscription: bool = Field(..., description="Whether the user ever held a pro record")
    message: str = Field(..., description="Human-readable status message")
    subscription_id: Optional[str] = Field(None, description="Provider subscription id of the representative record")
    membership: Optional[str] = Field(None, description="saver, pro, super or add_on")
    expires_at: Optional[str] = Field(None, description="ISO-8601 expiry of the representative record")
    subscription_status_canceled: bool = Field(False, description="Whether the subscription is set to cancel")
    payment_provider: Optional[str] = Field(None, description="polar or paypal")

    class Config:
        json_schema_extra = {
            "example": {
                "credits": 190,
                "membershipStatus": "active",
                "planType": "monthly",
                "canBuy": True,
                "hasEverHadSubscription": True,
                "message": "You have an active plan with a total of 190 credits. You can add more at any time.",
                "subscription_id": "I-BW452GLLEP1G",
                "membership": "pro",
                "expires_at": "2025-02-10T12:00:00+00:00",
                "subscription_status_canceled": False,
                "payment_provider": "paypal"
            }
        }


class CreditsResponse(BaseModel):
    """Envelope returned by GET /credits."""
    success: bool = Field(..., description="Whether the summary could be built")
    data: Optional[UserCreditsData] = Field(None, description="Summary when successful")
    error: Optional[str] = Field(None, description="Error message when unsuccessful")
