from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.unicore.schemas.common import utc_now


class Provider(BaseModel):
    """A resource provider account, keyed by the identity provider's subject id."""

    model_config = ConfigDict(validate_assignment=True)

    subject_id: str = Field("", description="Stable subject id from the identity provider (document key).")
    id: str = Field("", description="Internal provider id, generated once at registration.")
    name: str = Field("", description="Display name.")
    email: str = Field("", description="Contact email (from the credential's claims when available).")
    created_at: datetime = Field(default_factory=utc_now, description="UTC timestamp of registration.")
    last_login: datetime = Field(default_factory=utc_now, description="UTC timestamp of the last successful login.")


class RegisterRequest(BaseModel):
    """Request body for registering the caller as a provider."""

    name: str = Field(..., description="Display name for the new provider.")


class AuthResponse(BaseModel):
    """Provider summary returned by register/login/me."""

    subject_id: str = Field(..., description="Stable subject id from the identity provider.")
    name: str = Field(..., description="Display name.")
    email: str = Field(..., description="Contact email.")
    created_at: datetime = Field(..., description="UTC timestamp of registration.")
    last_login: datetime = Field(..., description="UTC timestamp of the last successful login.")

    @classmethod
    def from_provider(cls, provider: Provider) -> "AuthResponse":
        return cls(
            subject_id=provider.subject_id,
            name=provider.name,
            email=provider.email,
            created_at=provider.created_at,
            last_login=provider.last_login,
        )
