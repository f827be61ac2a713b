from fastapi import Request

from app.billing.reconciler import WebhookReconciler
from app.core.stripe_gateway import StripeGateway
from app.core.supabase_rest import SupabaseBillingStore


def get_billing_store(request: Request) -> SupabaseBillingStore:
    return request.app.state.billing_store


def get_stripe_gateway(request: Request) -> StripeGateway:
    return request.app.state.stripe_gateway


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler
