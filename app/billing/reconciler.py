from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi.concurrency import run_in_threadpool

from app.billing.status import (
    ProviderSubscription,
    SubscriptionStatus,
    checkout_status,
    featured_for,
    map_provider_status,
)
from app.core.emailer import EmailDispatcher
from app.core.logging import get_logger
from app.core.stripe_gateway import StripeGateway
from app.core.supabase_rest import SupabaseBillingStore
from app.core.tasks import Scheduler, best_effort
from app.notifications.templates import featured_listing_confirmation_email

logger = get_logger("billing.reconciler")

APPLIED = "applied"
IGNORED = "ignored"
SKIPPED = "skipped"


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _object_id(value: Any) -> str | None:
    if isinstance(value, dict):
        return _clean_str(value.get("id"))
    return _clean_str(value)


def _session_email(session: dict[str, Any]) -> str | None:
    details = session.get("customer_details")
    if isinstance(details, dict) and _clean_str(details.get("email")):
        return _clean_str(details.get("email"))
    return _clean_str(session.get("customer_email"))


class WebhookReconciler:
    """Applies verified Stripe events to subscription and listing rows.

    Every write is an upsert or an update keyed by the Stripe subscription id,
    so a redelivered event leaves the rows as the first delivery did.
    """

    def __init__(
        self,
        *,
        store: SupabaseBillingStore,
        gateway: StripeGateway,
        mailer: EmailDispatcher,
        dashboard_url: str,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.mailer = mailer
        self.dashboard_url = dashboard_url
        self._handlers: dict[str, Callable[[dict[str, Any], Scheduler], Awaitable[str]]] = {
            "checkout.session.completed": self._handle_checkout_completed,
            "customer.subscription.created": self._handle_subscription_update,
            "customer.subscription.updated": self._handle_subscription_update,
            "customer.subscription.deleted": self._handle_subscription_deleted,
        }

    async def apply(self, event: dict[str, Any], *, schedule: Scheduler) -> str:
        event_type = str(event.get("type") or "")
        event_id = str(event.get("id") or "")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(
                "billing.webhook_ignored",
                extra={"component": "billing", "event_id": event_id, "event_type": event_type},
            )
            return IGNORED

        outcome = await handler(event["data"]["object"], schedule)
        logger.info(
            "billing.webhook_processed",
            extra={
                "component": "billing",
                "event_id": event_id,
                "event_type": event_type,
                "outcome": outcome,
            },
        )
        return outcome

    async def _handle_checkout_completed(self, session: dict[str, Any], schedule: Scheduler) -> str:
        metadata = session.get("metadata") if isinstance(session.get("metadata"), dict) else {}
        user_id = _clean_str(metadata.get("user_id"))
        listing_id = _clean_str(metadata.get("listing_id"))
        subscription_id = _object_id(session.get("subscription"))

        if not user_id or not listing_id or not subscription_id:
            logger.error(
                "billing.checkout_metadata_missing",
                extra={"component": "billing", "session_id": _clean_str(session.get("id"))},
            )
            return SKIPPED

        subscription = await run_in_threadpool(self.gateway.retrieve_subscription, subscription_id)
        existing = await self.store.select_subscription(subscription_id)

        await self.store.upsert_subscription(
            {
                "user_id": user_id,
                "listing_id": listing_id,
                "stripe_subscription_id": subscription_id,
                "stripe_customer_id": _object_id(session.get("customer")) or subscription.customer_id,
                "status": checkout_status(subscription.status).value,
                **subscription.period_fields(),
            }
        )
        await self.store.set_listing_featured(listing_id, True)

        if existing is None:
            schedule(
                best_effort(self.send_confirmation, name="featured_listing_confirmation"),
                listing_id=listing_id,
                user_id=user_id,
                recipient=_session_email(session),
            )
        return APPLIED

    async def _handle_subscription_update(self, payload: dict[str, Any], schedule: Scheduler) -> str:
        subscription = ProviderSubscription.from_payload(payload)
        existing = await self._existing_subscription(subscription.id)
        if existing is None:
            return SKIPPED

        local_status = map_provider_status(subscription.status)
        await self.store.update_subscription(
            subscription.id,
            {"status": local_status.value, **subscription.period_fields()},
        )
        await self._sync_listing(existing, local_status)
        return APPLIED

    async def _handle_subscription_deleted(self, payload: dict[str, Any], schedule: Scheduler) -> str:
        subscription_id = _clean_str(payload.get("id")) or ""
        existing = await self._existing_subscription(subscription_id)
        if existing is None:
            return SKIPPED

        await self.store.update_subscription(subscription_id, {"status": SubscriptionStatus.CANCELLED.value})
        await self._sync_listing(existing, SubscriptionStatus.CANCELLED)
        return APPLIED

    async def _existing_subscription(self, subscription_id: str) -> dict[str, Any] | None:
        # Lifecycle events never create rows; only checkout completion does.
        existing = await self.store.select_subscription(subscription_id) if subscription_id else None
        if existing is None:
            logger.error(
                "billing.subscription_not_found",
                extra={"component": "billing", "stripe_subscription_id": subscription_id},
            )
        return existing

    async def _sync_listing(self, subscription_row: dict[str, Any], status: SubscriptionStatus) -> None:
        featured = featured_for(status)
        listing_id = _clean_str(subscription_row.get("listing_id"))
        if featured is None or not listing_id:
            return
        await self.store.set_listing_featured(listing_id, featured)

    async def send_confirmation(self, *, listing_id: str, user_id: str, recipient: str | None) -> None:
        if not recipient:
            user = await self.store.select_user(user_id)
            recipient = _clean_str(user.get("email")) if user else None
        if not recipient:
            logger.warning(
                "billing.confirmation_recipient_missing",
                extra={"component": "billing", "listing_id": listing_id},
            )
            return

        listing = await self.store.select_listing(listing_id)
        practice_name = _clean_str(listing.get("practice_name")) if listing else None
        message = featured_listing_confirmation_email(practice_name or "", self.dashboard_url)
        await self.mailer.send(to=recipient, subject=message["subject"], html=message["html"])
