from typing import Any

import httpx
from fastapi import HTTPException, status

from app.core.logging import get_logger, sanitize_error
from app.core.settings import Settings

logger = get_logger("core.supabase_rest")

LISTING_COLUMNS = "id,user_id,practice_name,is_featured"
USER_COLUMNS = "id,email,stripe_customer_id"
SUBSCRIPTION_COLUMNS = (
    "id,user_id,listing_id,stripe_subscription_id,stripe_customer_id,status,"
    "current_period_start,current_period_end,cancel_at_period_end,created_at"
)


def _platform_error(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _validated_list_payload(payload: Any, error_detail: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        raise _platform_error(error_detail)
    for item in payload:
        if not isinstance(item, dict):
            raise _platform_error(error_detail)
    return payload


class SupabaseBillingStore:
    """PostgREST access to the users, listings and subscriptions tables.

    Every request runs with the service-role credential; ownership checks are
    expressed as explicit filters rather than relying on row level security.
    """

    def __init__(self, settings: Settings) -> None:
        self.base_url = f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1"
        self._service_role_key = settings.SUPABASE_SERVICE_ROLE_KEY.strip()

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._service_role_key}",
            "apikey": self._service_role_key,
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _log_failure(self, table: str, operation: str, exc: Exception) -> None:
        logger.error(
            "supabase.request_failed",
            extra={
                "component": "supabase",
                "table": table,
                "operation": operation,
                "error": sanitize_error(exc, default_message="supabase request failed"),
            },
        )

    async def _select(self, table: str, params: dict[str, str], *, error_detail: str) -> list[dict[str, Any]]:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{self.base_url}/{table}", params=params, headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPError as exc:
            self._log_failure(table, "select", exc)
            raise _platform_error(error_detail) from exc

        return _validated_list_payload(response.json(), error_detail)

    async def _select_one(self, table: str, params: dict[str, str], *, error_detail: str) -> dict[str, Any] | None:
        rows = await self._select(table, {**params, "limit": "1"}, error_detail=error_detail)
        return rows[0] if rows else None

    async def _patch(
        self,
        table: str,
        filters: dict[str, str],
        payload: dict[str, Any],
        *,
        error_detail: str,
    ) -> None:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.patch(
                    f"{self.base_url}/{table}",
                    params=filters,
                    json=payload,
                    headers=self._headers("return=minimal"),
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            self._log_failure(table, "update", exc)
            raise _platform_error(error_detail) from exc

    async def _upsert(
        self,
        table: str,
        payload: dict[str, Any],
        *,
        conflict_column: str,
        error_detail: str,
    ) -> None:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    f"{self.base_url}/{table}",
                    params={"on_conflict": conflict_column},
                    json=payload,
                    headers=self._headers("resolution=merge-duplicates,return=minimal"),
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            self._log_failure(table, "upsert", exc)
            raise _platform_error(error_detail) from exc

    async def select_owned_listing(self, listing_id: str, user_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "listings",
            {"select": LISTING_COLUMNS, "id": f"eq.{listing_id}", "user_id": f"eq.{user_id}"},
            error_detail="Failed to fetch listing from Supabase.",
        )

    async def select_listing(self, listing_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "listings",
            {"select": LISTING_COLUMNS, "id": f"eq.{listing_id}"},
            error_detail="Failed to fetch listing from Supabase.",
        )

    async def select_user(self, user_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "users",
            {"select": USER_COLUMNS, "id": f"eq.{user_id}"},
            error_detail="Failed to fetch user from Supabase.",
        )

    async def update_user_customer_id(self, user_id: str, customer_id: str) -> None:
        await self._patch(
            "users",
            {"id": f"eq.{user_id}"},
            {"stripe_customer_id": customer_id},
            error_detail="Failed to save billing customer in Supabase.",
        )

    async def upsert_subscription(self, row: dict[str, Any]) -> None:
        await self._upsert(
            "subscriptions",
            row,
            conflict_column="stripe_subscription_id",
            error_detail="Failed to save subscription in Supabase.",
        )

    async def select_subscription(self, stripe_subscription_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "subscriptions",
            {
                "select": SUBSCRIPTION_COLUMNS,
                "stripe_subscription_id": f"eq.{stripe_subscription_id}",
            },
            error_detail="Failed to fetch subscription from Supabase.",
        )

    async def update_subscription(self, stripe_subscription_id: str, payload: dict[str, Any]) -> None:
        await self._patch(
            "subscriptions",
            {"stripe_subscription_id": f"eq.{stripe_subscription_id}"},
            payload,
            error_detail="Failed to update subscription in Supabase.",
        )

    async def select_listing_subscription(self, listing_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "subscriptions",
            {
                "select": SUBSCRIPTION_COLUMNS,
                "listing_id": f"eq.{listing_id}",
                "order": "created_at.desc",
            },
            error_detail="Failed to fetch subscription from Supabase.",
        )

    async def set_listing_featured(self, listing_id: str, featured: bool) -> None:
        await self._patch(
            "listings",
            {"id": f"eq.{listing_id}"},
            {"is_featured": featured},
            error_detail="Failed to update listing in Supabase.",
        )
