from __future__ import annotations

import httpx

from app.core.logging import get_logger
from app.core.settings import Settings

logger = get_logger("notifications.emailer")


class EmailSendError(RuntimeError):
    pass


def _recipient_domain(recipient: str) -> str:
    value = recipient.strip().lower()
    if "@" not in value:
        return "unknown"
    return value.rsplit("@", maxsplit=1)[-1] or "unknown"


class EmailDispatcher:
    """Hands messages to the ``send-email`` edge function, which owns the mail provider."""

    def __init__(self, settings: Settings) -> None:
        self.function_url = settings.SEND_EMAIL_FUNCTION_URL
        self.from_email = (settings.EMAIL_FROM or "").strip() or None
        self._service_role_key = settings.SUPABASE_SERVICE_ROLE_KEY.strip()

    async def send(self, *, to: str, subject: str, html: str) -> None:
        payload: dict[str, str] = {"to": to, "subject": subject, "html": html}
        if self.from_email:
            payload["from"] = self.from_email
        headers = {
            "Authorization": f"Bearer {self._service_role_key}",
            "apikey": self._service_role_key,
            "Content-Type": "application/json",
        }
        recipient_domain = _recipient_domain(to)

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.function_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "notifications.email_send_failed",
                extra={"component": "notifications", "recipient_domain": recipient_domain},
            )
            raise EmailSendError("Failed to send notification email.") from exc

        logger.info(
            "notifications.email_sent",
            extra={"component": "notifications", "recipient_domain": recipient_domain},
        )
