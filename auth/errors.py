"""
auth/errors.py -- Error taxonomy for the credential and token workflow.

Every error the service layer raises on purpose is an AuthError. Each subclass
carries the HTTP status, a stable machine-readable code and the client-facing
message, so the API layer renders all of them with one exception handler.

Propagation policy:
  ValidationError, DuplicateUserError, InvalidCredentialsError,
  InvalidTokenError and UnknownUserError are surfaced to the caller verbatim.

  InternalError is the only 500. Persistence and signing failures are logged
  where they are caught and re-raised as InternalError with a generic message.
  The original exception stays on __cause__ for the server log only.

  SigningError is raised by the token layer and never reaches a client
  directly -- AuthService wraps it in InternalError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    """Base class for errors rendered to API clients."""

    status_code: int = 500
    code: str = "auth_error"
    message: str = "Authentication error."

    def __init__(self, message: str | None = None, errors: list[dict[str, Any]] | None = None) -> None:
        if message is not None:
            self.message = message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.errors is not None:
            payload["errors"] = self.errors
        return payload


class ValidationError(AuthError):
    """Malformed or missing input. errors holds one {field, message} per problem."""

    status_code = 400
    code = "invalid_input"
    message = "invalid input"


class DuplicateUserError(AuthError):
    status_code = 400
    code = "user_exists"
    message = "user already exists"


class InvalidCredentialsError(AuthError):
    """Unknown username and wrong password both raise this, with identical payloads."""

    status_code = 400
    code = "invalid_credentials"
    message = "invalid credentials"


class InvalidTokenError(AuthError):
    status_code = 401
    code = "invalid_token"
    message = "invalid token"


class UnknownUserError(AuthError):
    """The token verified, but its subject no longer exists in the store."""

    status_code = 401
    code = "invalid_user"
    message = "invalid user"


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"
    message = "internal server error"


class SigningError(Exception):
    """The signing primitive failed. Internal only; see module docstring."""
