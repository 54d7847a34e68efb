"""
auth/tokens.py -- JWT issuance/verification and the auth cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub/user_id, email, iat, exp and a
       random jti. The jti makes every issued token distinct even when two are
       signed for the same user within the same second -- the session table
       keys on the raw token string, so collisions would merge sessions.

  Verification returns None on any failure (malformed, bad signature, missing
       claims, expired). The caller turns None into a 401. An unverified
       payload is never inspected.

  Expiry: python-jose only rejects exp < now, so a token whose exp equals the
       current second would still pass. verify() additionally requires
       now < exp, which makes a ttl=0 token deterministically invalid.

  Signing key: TokenService is constructed with the key explicitly (see
       api/main.py create_app). There is no module-level secret.

  A valid signature is necessary but NOT sufficient for authentication. The
       matching session row must also exist -- see AuthService.resolve().

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

from jose import JWTError, jwt

_ALGORITHM = "HS256"

COOKIE_NAME = "token"

DEFAULT_ACCESS_TTL = 3600
DEFAULT_REFRESH_TTL = 7 * 24 * 3600


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of a token. Only ever built from a checked signature."""

    user_id: int
    email: str
    issued_at: int
    expires_at: int
    token_id: str


class TokenService:
    """Signs and verifies bearer tokens with one process-wide key.

    Usage:
        tokens = TokenService(settings.secret_key)
        raw = tokens.issue(user.id, user.email)
        payload = tokens.verify(raw)  # TokenPayload | None
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: int = DEFAULT_ACCESS_TTL,
        refresh_ttl: int = DEFAULT_REFRESH_TTL,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        self._secret_key = secret_key
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def issue(self, user_id: int, email: str, ttl: int | None = None) -> str:
        """Encode a signed JWT for the given identity.

        Args:
            user_id: Numeric user ID stored in the DB.
            email:   Email claim, informational only (the session join is
                     authoritative for the user record).
            ttl:     Lifetime in seconds. None uses access_ttl (1 hour by
                     default). Zero or negative values produce a token that
                     is already expired.
        """
        lifetime = self.access_ttl if ttl is None else ttl
        now = int(time.time())
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "email": email,
            "iat": now,
            "exp": now + lifetime,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def issue_refresh(self, user_id: int, email: str) -> str:
        """Long-lived variant. Same key and verification path, later expiry."""
        return self.issue(user_id, email, ttl=self.refresh_ttl)

    def verify(self, token: str) -> TokenPayload | None:
        """Verify signature and expiry. Returns the payload or None on any failure."""
        if not token or not isinstance(token, str):
            return None
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None

        user_id = claims.get("user_id")
        email = claims.get("email")
        issued_at = claims.get("iat")
        expires_at = claims.get("exp")
        # bool is an int subclass; a forged-but-signed True must not pass as id 1.
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            return None
        if not isinstance(email, str) or not isinstance(expires_at, int) or not isinstance(issued_at, int):
            return None
        if time.time() >= expires_at:
            return None
        return TokenPayload(
            user_id=user_id,
            email=email,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(claims.get("jti", "")),
        )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int, secure: bool = True) -> None:
    """Write the token as an httpOnly cookie on the response.

    Produces: token=<value>; HttpOnly; Secure; SameSite=Lax; Max-Age=<ttl>; Path=/

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": sent on same-site navigations, not on cross-site POST.
    secure: only sent over HTTPS. Disable via SECURE_COOKIES=false for local
        plain-HTTP development.
    max_age: matches the token and session expiry so all three lapse together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
        path="/",
    )


def clear_auth_cookie(response, secure: bool = True) -> None:
    """Expire the auth cookie with the same attributes it was set with."""
    response.delete_cookie(COOKIE_NAME, path="/", secure=secure, httponly=True, samesite="lax")
