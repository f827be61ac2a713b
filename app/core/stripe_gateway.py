from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import stripe
from fastapi import HTTPException, status

from app.billing.status import ProviderSubscription
from app.core.logging import get_logger, sanitize_error
from app.core.settings import Settings

logger = get_logger("core.stripe_gateway")


class WebhookVerificationError(ValueError):
    """Raised when an inbound webhook cannot be trusted or parsed."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


def _provider_error(exc: stripe.StripeError, *, operation: str, detail: str) -> HTTPException:
    logger.error(
        "stripe.request_failed",
        extra={
            "component": "stripe",
            "operation": operation,
            "error": sanitize_error(exc, default_message="stripe request failed"),
        },
    )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class StripeGateway:
    def __init__(self, settings: Settings, client: stripe.StripeClient | None = None) -> None:
        self.client = client or stripe.StripeClient(
            settings.STRIPE_SECRET_KEY,
            stripe_version=settings.STRIPE_API_VERSION,
        )
        self.webhook_secret = (settings.STRIPE_WEBHOOK_SECRET or "").strip() or None
        self.webhook_tolerance = settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
        self.price_cents = settings.FEATURED_LISTING_PRICE_CENTS
        self.currency = settings.FEATURED_LISTING_CURRENCY.strip().lower()
        self.dashboard_url = settings.dashboard_url

    def create_customer(self, *, email: str | None, user_id: str) -> str:
        params: dict[str, Any] = {"metadata": {"supabase_user_id": user_id}}
        if email:
            params["email"] = email
        try:
            customer = self.client.customers.create(params=params)
        except stripe.StripeError as exc:
            raise _provider_error(exc, operation="customers.create", detail="Failed to create billing customer.") from exc
        return customer.id

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        listing_id: str,
        user_id: str,
        practice_name: str,
    ) -> CheckoutSession:
        params: dict[str, Any] = {
            "customer": customer_id,
            "payment_method_types": ["card"],
            "mode": "subscription",
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": f"Featured Listing - {practice_name}",
                            "description": "Monthly featured listing subscription",
                        },
                        "recurring": {"interval": "month"},
                        "unit_amount": self.price_cents,
                    },
                    "quantity": 1,
                }
            ],
            "success_url": f"{self.dashboard_url}?success=true",
            "cancel_url": f"{self.dashboard_url}?canceled=true",
            "metadata": {"listing_id": listing_id, "user_id": user_id},
        }
        try:
            session = self.client.checkout.sessions.create(params=params)
        except stripe.StripeError as exc:
            raise _provider_error(
                exc,
                operation="checkout.sessions.create",
                detail="Failed to create checkout session.",
            ) from exc
        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        try:
            subscription = self.client.subscriptions.retrieve(subscription_id)
        except stripe.StripeError as exc:
            raise _provider_error(
                exc,
                operation="subscriptions.retrieve",
                detail="Failed to fetch subscription from Stripe.",
            ) from exc
        return ProviderSubscription.from_stripe(subscription)

    def create_portal_session(self, *, customer_id: str) -> str:
        try:
            session = self.client.billing_portal.sessions.create(
                params={"customer": customer_id, "return_url": self.dashboard_url}
            )
        except stripe.StripeError as exc:
            raise _provider_error(
                exc,
                operation="billing_portal.sessions.create",
                detail="Failed to create billing portal session.",
            ) from exc
        return session.url

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify and decode a webhook body.

        Without a configured signing secret the payload is trusted as-is; settings
        refuse to load in production without one.
        """
        if self.webhook_secret and not signature:
            raise WebhookVerificationError("Missing stripe-signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookVerificationError("Webhook payload is not valid UTF-8") from None

        if self.webhook_secret:
            try:
                stripe.WebhookSignature.verify_header(
                    body,
                    signature,
                    self.webhook_secret,
                    self.webhook_tolerance,
                )
            except stripe.SignatureVerificationError as exc:
                raise WebhookVerificationError(f"Webhook Error: {exc.user_message or exc}") from None
        else:
            logger.warning("billing.webhook_unverified", extra={"component": "billing"})

        try:
            event = json.loads(body)
        except ValueError:
            raise WebhookVerificationError("Webhook payload is not valid JSON") from None
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise WebhookVerificationError("Webhook payload is not a Stripe event")
        data = event.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
            raise WebhookVerificationError("Webhook event has no data object")
        return event
