from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from app.api.dependencies import get_billing_store, get_reconciler, get_stripe_gateway
from app.api.v1.schemas.billing import (
    CheckoutSessionIn,
    CheckoutSessionOut,
    PortalSessionOut,
    WebhookAckOut,
)
from app.billing.reconciler import WebhookReconciler
from app.core.logging import get_logger
from app.core.stripe_gateway import StripeGateway, WebhookVerificationError
from app.core.supabase_jwt import VerifiedSupabaseAuth, verify_supabase_auth
from app.core.supabase_rest import SupabaseBillingStore

logger = get_logger("api.stripe")

router = APIRouter(prefix="/stripe")
supabase_auth_dependency = Depends(verify_supabase_auth)
billing_store_dependency = Depends(get_billing_store)
stripe_gateway_dependency = Depends(get_stripe_gateway)
reconciler_dependency = Depends(get_reconciler)


def _stored_customer_id(user_row: dict[str, object] | None) -> str | None:
    value = user_row.get("stripe_customer_id") if isinstance(user_row, dict) else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


async def _ensure_customer(
    auth: VerifiedSupabaseAuth,
    store: SupabaseBillingStore,
    gateway: StripeGateway,
) -> str:
    user_row = await store.select_user(auth.user_id)
    customer_id = _stored_customer_id(user_row)
    if customer_id:
        return customer_id

    stored_email = user_row.get("email") if isinstance(user_row, dict) else None
    email = auth.email or (stored_email if isinstance(stored_email, str) else None)
    customer_id = await run_in_threadpool(gateway.create_customer, email=email, user_id=auth.user_id)
    await store.update_user_customer_id(auth.user_id, customer_id)
    logger.info(
        "billing.customer_created",
        extra={"component": "billing", "user_id": auth.user_id, "stripe_customer_id": customer_id},
    )
    return customer_id


@router.post("/checkout")
async def create_checkout_session(
    payload: CheckoutSessionIn | None = Body(default=None),
    auth: VerifiedSupabaseAuth = supabase_auth_dependency,
    store: SupabaseBillingStore = billing_store_dependency,
    gateway: StripeGateway = stripe_gateway_dependency,
) -> CheckoutSessionOut:
    listing_id = (payload.listing_id or "").strip() if payload is not None else ""
    if not listing_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing listingId")

    listing = await store.select_owned_listing(listing_id, auth.user_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found or access denied",
        )

    customer_id = await _ensure_customer(auth, store, gateway)
    practice_name = listing.get("practice_name")
    session = await run_in_threadpool(
        gateway.create_checkout_session,
        customer_id=customer_id,
        listing_id=listing_id,
        user_id=auth.user_id,
        practice_name=practice_name if isinstance(practice_name, str) else "",
    )
    logger.info(
        "billing.checkout_created",
        extra={"component": "billing", "listing_id": listing_id, "checkout_session_id": session.id},
    )
    return CheckoutSessionOut(session_id=session.id, url=session.url)


@router.post("/portal")
async def create_portal_session(
    auth: VerifiedSupabaseAuth = supabase_auth_dependency,
    store: SupabaseBillingStore = billing_store_dependency,
    gateway: StripeGateway = stripe_gateway_dependency,
) -> PortalSessionOut:
    customer_id = _stored_customer_id(await store.select_user(auth.user_id))
    if not customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")

    url = await run_in_threadpool(gateway.create_portal_session, customer_id=customer_id)
    return PortalSessionOut(url=url)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    gateway: StripeGateway = stripe_gateway_dependency,
    reconciler: WebhookReconciler = reconciler_dependency,
) -> WebhookAckOut:
    payload = await request.body()
    try:
        event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    except WebhookVerificationError as exc:
        logger.warning(
            "billing.webhook_rejected",
            extra={"component": "billing", "reason": str(exc)},
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None

    await reconciler.apply(event, schedule=background_tasks.add_task)
    return WebhookAckOut()
