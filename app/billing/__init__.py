from app.billing.status import (
    ProviderSubscription,
    SubscriptionStatus,
    checkout_status,
    featured_for,
    map_provider_status,
)

__all__ = [
    "ProviderSubscription",
    "SubscriptionStatus",
    "checkout_status",
    "featured_for",
    "map_provider_status",
]
