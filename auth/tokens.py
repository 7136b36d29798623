"""
auth/tokens.py -- Token issuance and verification.

Security design decisions:
  JWT: python-jose, signed with HS256. Every token carries exactly two claims:
       "sub" (the user id as a string -- RFC 7519 requires a string subject)
       and "exp" (Unix timestamp). Access and refresh tokens share that shape
       and differ only in lifetime.

  Secret: passed to the TokenIssuer / TokenVerifier constructors instead of
       being read from a module global, so the key can be rotated and tests
       can run issuers with different secrets side by side.

  Algorithm pinning: the verifier only accepts the HMAC family. A token whose
       header says "none" or an asymmetric algorithm (e.g. RS256, where the
       shared secret would be misused as a public key) is rejected before the
       signature is even looked at.

  Failures: verification errors of any kind become InvalidTokenError. The
       reason is logged at debug level and never returned to the client.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt
from jose.exceptions import JOSEError

from auth.errors import InvalidTokenError, SigningError, UnknownUserError
from auth.models import Claims, TokenPair, User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("tokenauth.tokens")

ALGORITHM = "HS256"
_HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")

ACCESS_TOKEN_TTL = timedelta(minutes=30)
REFRESH_TOKEN_TTL = timedelta(hours=1)


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints access/refresh token pairs for a stored user.

    Usage:
        issuer = TokenIssuer(settings.secret_key)
        pair = issuer.issue(user)
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: timedelta = ACCESS_TOKEN_TTL,
        refresh_ttl: timedelta = REFRESH_TOKEN_TTL,
    ) -> None:
        self._secret_key = secret_key
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def issue(self, user: User) -> TokenPair:
        """Return a fresh TokenPair for user.

        Raises SigningError if the user has no id yet or the signing
        primitive fails. Callers treat that as an internal error.
        """
        if user.id is None:
            raise SigningError("cannot issue tokens for a user without an id")
        return TokenPair(
            access_token=self._sign(user.id, self.access_ttl),
            refresh_token=self._sign(user.id, self.refresh_ttl),
        )

    def _sign(self, user_id: int, ttl: timedelta) -> str:
        payload = {
            "sub": str(user_id),
            "exp": datetime.now(timezone.utc) + ttl,
        }
        try:
            return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
        except JOSEError as exc:
            raise SigningError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class TokenVerifier:
    """Validates tokens minted by a TokenIssuer holding the same secret."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key

    def decode(self, token: str) -> Claims:
        """Verify signature, algorithm and expiry; return the decoded claims.

        Raises InvalidTokenError on any failure: malformed structure, a
        non-HMAC algorithm header, bad signature, expiry in the past, or a
        missing / non-integer subject.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            logger.debug("Rejected token with unreadable header: %s", exc)
            raise InvalidTokenError() from exc
        if header.get("alg") not in _HMAC_ALGORITHMS:
            logger.debug("Rejected token with unexpected signing method: %r", header.get("alg"))
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=list(_HMAC_ALGORITHMS),
                options={"require_exp": True, "require_sub": True},
            )
        except JWTError as exc:
            logger.debug("Rejected token: %s", exc)
            raise InvalidTokenError() from exc

        try:
            subject = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            logger.debug("Rejected token with non-integer subject")
            raise InvalidTokenError() from exc
        return Claims(
            subject=subject,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def verify(self, token: str) -> int:
        """Return the subject (user id) of a valid token."""
        return self.decode(token).subject

    def resolve_user(self, token: str, store: UserStore) -> User:
        """Verify token and load its subject from store.

        Raises InvalidTokenError for a bad token and UnknownUserError when the
        subject no longer exists. Store errors propagate to the caller.
        """
        user = store.get_by_id(self.verify(token))
        if user is None:
            raise UnknownUserError()
        return user
