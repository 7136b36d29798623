"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an access token in the Authorization header:

    Authorization: Bearer <access_token>

get_current_user() verifies the token, resolves its subject to a stored User
and raises InvalidTokenError / UnknownUserError otherwise. The API layer's
AuthError handler turns those into 401 responses.

Layer rule: auth/dependencies.py may import from fastapi (for Request) because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import InternalError, InvalidTokenError
from auth.models import User
from auth.service import AuthService

logger = logging.getLogger("tokenauth.auth")


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService built by the application lifespan."""
    return request.app.state.auth_service


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> User:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise InvalidTokenError("authentication required")

    service = get_auth_service(request)
    try:
        return service.verifier.resolve_user(token, service.store)
    except SQLAlchemyError as exc:
        logger.exception("Store error while authenticating request")
        raise InternalError() from exc
