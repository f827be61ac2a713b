from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SubscriptionStatusValue = Literal["active", "past_due", "cancelled", "expired"]


class CheckoutSessionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing_id: str | None = Field(default=None, alias="listingId")


class CheckoutSessionOut(BaseModel):
    session_id: str = Field(serialization_alias="sessionId")
    url: str


class PortalSessionOut(BaseModel):
    url: str


class WebhookAckOut(BaseModel):
    received: bool = True


class SubscriptionOut(BaseModel):
    stripe_subscription_id: str
    status: SubscriptionStatusValue
    current_period_start: datetime | None
    current_period_end: datetime | None
    cancel_at_period_end: bool


class ListingSubscriptionOut(BaseModel):
    listing_id: str
    is_featured: bool
    subscription: SubscriptionOut | None
