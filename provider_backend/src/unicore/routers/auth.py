from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.unicore.dependencies import bearer_credential, get_auth_service
from src.unicore.schemas.common import ErrorResponse
from src.unicore.schemas.providers import AuthResponse, RegisterRequest
from src.unicore.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register provider",
    description="Create the provider account for the bearer credential's subject.",
    operation_id="register_provider",
)
def register(
    payload: RegisterRequest,
    credential: str = Depends(bearer_credential),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register the caller as a provider."""
    return AuthResponse.from_provider(auth.register(payload.name, credential))


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Log in",
    description="Verify the bearer credential and refresh the provider's last login time.",
    operation_id="login_provider",
)
def login(
    credential: str = Depends(bearer_credential),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate an existing provider."""
    return AuthResponse.from_provider(auth.authenticate(credential))


@router.get(
    "/me",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Current provider",
    description="Return the provider for the bearer credential.",
    operation_id="current_provider",
)
def me(
    credential: str = Depends(bearer_credential),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Return the caller's provider record."""
    return AuthResponse.from_provider(auth.current(credential))
