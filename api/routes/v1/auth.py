"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create a user; 201
  POST /api/v1/auth/login      -- username/password -> token pair
  POST /api/v1/auth/refresh    -- refresh token -> new token pair
  GET  /api/v1/auth/validate   -- echo the authenticated subject (requires auth)

Handlers are thin: they map request models onto AuthService calls and domain
results onto response models. Every failure is an AuthError raised by the
service or the auth dependency and rendered by the handler in api/main.py.

Security:
  Token responses carry Cache-Control: no-store so intermediaries never cache
  credentials.
  Handlers are sync on purpose: bcrypt and SQLite are blocking, so FastAPI
  runs them in its thread pool instead of on the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import (
    CredentialsRequest,
    RefreshRequest,
    TokenPairResponse,
    UserResponse,
    ValidateResponse,
)
from auth.dependencies import get_auth_service, get_current_user
from auth.models import User
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:  public
# - POST /api/v1/auth/login:     public
# - POST /api/v1/auth/refresh:   public -- the refresh token is the credential
# - GET  /api/v1/auth/validate:  requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(body: CredentialsRequest, service: AuthService = Depends(get_auth_service)) -> UserResponse:
    """Create a user account from a username and password."""
    user = service.register(body.username, body.password)
    return UserResponse.from_user(user)


@router.post("/auth/login", response_model=TokenPairResponse)
def login(
    body: CredentialsRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    """Authenticate with username and password; return an access/refresh token pair.

    Wrong username and wrong password produce the same 400 invalid_credentials
    body to avoid leaking username existence.
    """
    pair = service.login(body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    return TokenPairResponse.from_pair(pair)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(
    body: RefreshRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    """Exchange a valid refresh token for a new token pair."""
    pair = service.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return TokenPairResponse.from_pair(pair)


@router.get("/auth/validate", response_model=ValidateResponse)
def validate(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ValidateResponse:
    """Return the subject of the access token presented in the Authorization header."""
    return ValidateResponse(**service.validate_session(current_user))
