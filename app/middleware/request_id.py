import re
import uuid
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger, reset_request_id, set_request_id

logger = get_logger("api.request")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")
_QUIET_PATHS = {"/healthz", "/api/v1/healthz"}


def _resolve_request_id(request: Request) -> str:
    # Stripe sends no request id; browsers may forward one from the web app.
    incoming = request.headers.get("X-Request-ID", "").strip()
    if incoming and _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return str(uuid.uuid4())


def _request_fields(request: Request, **fields: object) -> dict[str, object]:
    return {"component": "api", "method": request.method, "path": request.url.path, **fields}


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id that is echoed back and stamped on every log line.

    Health probes are served without request logging.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = _resolve_request_id(request)
        request.state.request_id = request_id
        context_token = set_request_id(request_id)
        quiet = request.url.path in _QUIET_PATHS
        started = perf_counter()
        response: Response | None = None

        if not quiet:
            logger.info("request.start", extra=_request_fields(request))
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception("request.error", extra=_request_fields(request))
            raise
        finally:
            if response is not None:
                response.headers["X-Request-ID"] = request_id
            if not quiet:
                logger.info(
                    "request.end",
                    extra=_request_fields(
                        request,
                        status_code=response.status_code if response is not None else 500,
                        duration_ms=int((perf_counter() - started) * 1000),
                    ),
                )
            reset_request_id(context_token)
