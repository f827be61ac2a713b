from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def map_provider_status(value: str | None) -> SubscriptionStatus:
    """Translate a Stripe subscription status into the local lifecycle.

    Stripe reports ``incomplete``, ``incomplete_expired``, ``trialing``,
    ``unpaid`` and ``paused`` as well; none of those keep a listing featured,
    so everything outside the three recognised values collapses to ``expired``.
    """
    if value == "active":
        return SubscriptionStatus.ACTIVE
    if value == "canceled":
        return SubscriptionStatus.CANCELLED
    if value == "past_due":
        return SubscriptionStatus.PAST_DUE
    return SubscriptionStatus.EXPIRED


def checkout_status(value: str | None) -> SubscriptionStatus:
    if value == "active":
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.PAST_DUE


def featured_for(status: SubscriptionStatus) -> bool | None:
    # None leaves the listing flag untouched.
    if status is SubscriptionStatus.ACTIVE:
        return True
    if status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
        return False
    return None


def _epoch_to_iso(value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return datetime.fromtimestamp(value, UTC).isoformat().replace("+00:00", "Z")


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _customer_id(value: Any) -> str | None:
    # Expanded customers arrive as objects rather than ids.
    if isinstance(value, dict):
        value = value.get("id")
    elif value is not None and not isinstance(value, str):
        value = getattr(value, "id", None)
    return _optional_str(value)


@dataclass(frozen=True)
class ProviderSubscription:
    id: str
    customer_id: str | None
    status: str | None
    current_period_start: str | None
    current_period_end: str | None
    cancel_at_period_end: bool

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProviderSubscription":
        return cls(
            id=str(payload.get("id") or ""),
            customer_id=_customer_id(payload.get("customer")),
            status=_optional_str(payload.get("status")),
            current_period_start=_epoch_to_iso(payload.get("current_period_start")),
            current_period_end=_epoch_to_iso(payload.get("current_period_end")),
            cancel_at_period_end=bool(payload.get("cancel_at_period_end") or False),
        )

    @classmethod
    def from_stripe(cls, subscription: Any) -> "ProviderSubscription":
        return cls.from_payload(
            {
                "id": getattr(subscription, "id", None),
                "customer": getattr(subscription, "customer", None),
                "status": getattr(subscription, "status", None),
                "current_period_start": getattr(subscription, "current_period_start", None),
                "current_period_end": getattr(subscription, "current_period_end", None),
                "cancel_at_period_end": getattr(subscription, "cancel_at_period_end", None),
            }
        )

    def period_fields(self) -> dict[str, Any]:
        # Absent period bounds are left as stored instead of being nulled.
        fields: dict[str, Any] = {"cancel_at_period_end": self.cancel_at_period_end}
        if self.current_period_start is not None:
            fields["current_period_start"] = self.current_period_start
        if self.current_period_end is not None:
            fields["current_period_end"] = self.current_period_end
        return fields
