from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Header, HTTPException, Request, status
from jwt import PyJWKClient
from jwt.exceptions import InvalidTokenError, PyJWKClientError

from app.core.settings import Settings


@dataclass(frozen=True)
class VerifiedSupabaseAuth:
    access_token: str
    claims: dict[str, Any]

    @property
    def user_id(self) -> str:
        subject = self.claims.get("sub")
        return subject if isinstance(subject, str) else ""

    @property
    def email(self) -> str | None:
        email = self.claims.get("email")
        if isinstance(email, str) and email.strip():
            return email.strip()
        return None


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise _unauthorized()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized()

    return token.strip()


class SupabaseTokenVerifier:
    """Validates Supabase session tokens.

    Projects still on the legacy shared secret sign with HS256; newer projects
    publish asymmetric keys on the JWKS endpoint, which ``PyJWKClient`` caches.
    """

    def __init__(self, settings: Settings) -> None:
        self.issuer = settings.SUPABASE_ISSUER
        self._jwt_secret = (settings.SUPABASE_JWT_SECRET or "").strip() or None
        self._jwks_client = None if self._jwt_secret else PyJWKClient(settings.SUPABASE_JWKS_URL)

    def decode(self, token: str) -> dict[str, Any]:
        try:
            if self._jwt_secret:
                decoded = jwt.decode(
                    token,
                    self._jwt_secret,
                    algorithms=["HS256"],
                    options={"verify_aud": False},
                )
            else:
                signing_key = self._jwks_client.get_signing_key_from_jwt(token).key
                decoded = jwt.decode(
                    token,
                    signing_key,
                    algorithms=["RS256", "ES256"],
                    issuer=self.issuer,
                    options={"verify_aud": False},
                )
        except (InvalidTokenError, PyJWKClientError, ValueError):
            raise _unauthorized() from None

        if not isinstance(decoded, dict):
            raise _unauthorized()
        subject = decoded.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise _unauthorized()
        return decoded


def verify_supabase_auth(
    request: Request,
    authorization: str | None = Header(default=None),
) -> VerifiedSupabaseAuth:
    token = _extract_bearer_token(authorization)
    verifier: SupabaseTokenVerifier = request.app.state.token_verifier
    return VerifiedSupabaseAuth(access_token=token, claims=verifier.decode(token))
