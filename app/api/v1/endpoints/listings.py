from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_billing_store
from app.api.v1.schemas.billing import ListingSubscriptionOut
from app.billing.status import SubscriptionStatus
from app.core.supabase_jwt import VerifiedSupabaseAuth, verify_supabase_auth
from app.core.supabase_rest import SupabaseBillingStore

router = APIRouter()
supabase_auth_dependency = Depends(verify_supabase_auth)
billing_store_dependency = Depends(get_billing_store)

_KNOWN_STATUSES = {item.value for item in SubscriptionStatus}


@router.get("/listings/{listing_id}/subscription")
async def listing_subscription(
    listing_id: str,
    auth: VerifiedSupabaseAuth = supabase_auth_dependency,
    store: SupabaseBillingStore = billing_store_dependency,
) -> ListingSubscriptionOut:
    listing = await store.select_owned_listing(listing_id, auth.user_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found or access denied",
        )

    row = await store.select_listing_subscription(listing_id)
    subscription = None
    if isinstance(row, dict):
        subscription = {
            "stripe_subscription_id": row.get("stripe_subscription_id"),
            "status": (
                row.get("status")
                if row.get("status") in _KNOWN_STATUSES
                else SubscriptionStatus.EXPIRED.value
            ),
            "current_period_start": row.get("current_period_start"),
            "current_period_end": row.get("current_period_end"),
            "cancel_at_period_end": bool(row.get("cancel_at_period_end")),
        }

    return ListingSubscriptionOut.model_validate(
        {
            "listing_id": listing.get("id") or listing_id,
            "is_featured": bool(listing.get("is_featured")),
            "subscription": subscription,
        }
    )
