from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import router as v1_router
from app.billing.reconciler import WebhookReconciler
from app.core.emailer import EmailDispatcher
from app.core.logging import configure_logging
from app.core.settings import Settings, get_settings
from app.core.stripe_gateway import StripeGateway
from app.core.supabase_jwt import SupabaseTokenVerifier
from app.core.supabase_rest import SupabaseBillingStore
from app.middleware.request_id import RequestIDMiddleware


def create_app(settings: Settings | None = None) -> FastAPI:
    configure_logging()
    settings = settings or get_settings()

    app = FastAPI(title="TMH Directory Billing API")

    # Collaborators are built once here and reached through app.state.
    app.state.settings = settings
    app.state.token_verifier = SupabaseTokenVerifier(settings)
    app.state.billing_store = SupabaseBillingStore(settings)
    app.state.stripe_gateway = StripeGateway(settings)
    app.state.mailer = EmailDispatcher(settings)
    app.state.reconciler = WebhookReconciler(
        store=app.state.billing_store,
        gateway=app.state.stripe_gateway,
        mailer=app.state.mailer,
        dashboard_url=settings.dashboard_url,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "stripe-signature"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/healthz")
    def root_healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
