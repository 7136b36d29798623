"""
auth/service.py -- Register / login / refresh / validate orchestration.

AuthService composes the credential store, the password hasher and the token
issuer/verifier. It holds no per-request state; one instance lives on
app.state for the process lifetime.

Error policy:
  Client mistakes raise the matching AuthError subclass unchanged.
  SQLAlchemyError and SigningError are logged here with the traceback and
  re-raised as InternalError, so nothing about the database or the signing
  key reaches the response body.

Timing equalization:
  login() always runs one bcrypt comparison, against DUMMY_HASH when the
  username is unknown. Do NOT return early before verify_password(); that
  re-introduces username enumeration via response time.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    DuplicateUserError,
    InternalError,
    InvalidCredentialsError,
    SigningError,
    ValidationError,
)
from auth.models import TokenPair, User
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, hash_password, password_fits, verify_password
from auth.store import UserStore
from auth.tokens import TokenIssuer, TokenVerifier

logger = logging.getLogger("tokenauth.service")


class AuthService:
    def __init__(self, store: UserStore, issuer: TokenIssuer, verifier: TokenVerifier) -> None:
        self.store = store
        self.issuer = issuer
        self.verifier = verifier

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, username: str, password: str) -> User:
        """Create a user. Raises ValidationError, DuplicateUserError or InternalError."""
        _require_fields(username=username, password=password)
        if not password_fits(password):
            raise ValidationError(
                errors=[{"field": "password", "message": f"password must be at most {MAX_PASSWORD_BYTES} bytes"}]
            )

        try:
            if self.store.get_by_username(username) is not None:
                raise DuplicateUserError()
            hashed = hash_password(password)
            user = self.store.create_user(User(username=username, hashed_password=hashed))
        except IntegrityError as exc:
            # Lost the race against a concurrent registration for this username.
            raise DuplicateUserError() from exc
        except SQLAlchemyError as exc:
            logger.exception("Store error while registering user")
            raise InternalError() from exc

        logger.info("Registered user id=%s", user.id)
        return user

    def login(self, username: str, password: str) -> TokenPair:
        """Exchange a username/password for a TokenPair.

        Unknown username and wrong password raise the same
        InvalidCredentialsError so the caller cannot tell them apart.
        """
        _require_fields(username=username, password=password)

        try:
            user = self.store.get_by_username(username)
        except SQLAlchemyError as exc:
            logger.exception("Store error while looking up user for login")
            raise InternalError() from exc

        if user is None:
            verify_password(password, DUMMY_HASH)
            logger.info("Login failed: bad credentials")
            raise InvalidCredentialsError()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed: bad credentials")
            raise InvalidCredentialsError()

        return self._issue(user)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Mint a new TokenPair from a valid refresh token.

        The presented refresh token stays valid until its own expiry; there is
        no revocation list.
        """
        if not refresh_token:
            raise ValidationError(errors=[{"field": "refresh_token", "message": "refresh_token is required"}])

        try:
            user = self.verifier.resolve_user(refresh_token, self.store)
        except SQLAlchemyError as exc:
            logger.exception("Store error while resolving refresh token subject")
            raise InternalError() from exc
        return self._issue(user)

    def validate_session(self, user: User) -> dict[str, Any]:
        """Echo the subject the upstream auth dependency already authenticated."""
        return {"message": "I am logged in!", "subject": user.id}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: User) -> TokenPair:
        try:
            return self.issuer.issue(user)
        except SigningError as exc:
            logger.exception("Token signing failed for user id=%s", user.id)
            raise InternalError() from exc


def _require_fields(**fields: str) -> None:
    """Raise ValidationError listing every blank or non-string field."""
    errors = [
        {"field": name, "message": f"{name} is required"}
        for name, value in fields.items()
        if not isinstance(value, str) or not value.strip()
    ]
    if errors:
        raise ValidationError(errors=errors)
