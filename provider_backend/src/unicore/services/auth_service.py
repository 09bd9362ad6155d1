from __future__ import annotations

import logging

from src.unicore.errors import ConflictError, InvalidInputError, NotFoundError
from src.unicore.schemas.providers import Provider
from src.unicore.services.identity import IdentityVerifier, VerifiedIdentity
from src.unicore.services.provider_store import ProviderStore

logger = logging.getLogger(__name__)


class AuthService:
    """Register / login flows: verify the credential, then look up or create the Provider."""

    def __init__(self, verifier: IdentityVerifier, providers: ProviderStore):
        self._verifier = verifier
        self._providers = providers

    # PUBLIC_INTERFACE
    def verify(self, credential: str) -> VerifiedIdentity:
        return self._verifier.verify(credential)

    # PUBLIC_INTERFACE
    def register(self, name: str, credential: str) -> Provider:
        """
        Create the Provider for the credential's subject.

        InvalidInputError for an empty name (checked before anything else), AuthError for a bad
        credential, ConflictError when the subject is already registered.
        """
        if not (name or "").strip():
            raise InvalidInputError("name is required")

        identity = self._verifier.verify(credential)
        if self._providers.get_by_subject_id(identity.subject_id) is not None:
            logger.info("Registration rejected: subject=%s already registered", identity.subject_id)
            raise ConflictError("a provider with this account already exists")

        return self._providers.create(name, identity.email or "", identity.subject_id)

    # PUBLIC_INTERFACE
    def authenticate(self, credential: str) -> Provider:
        """Return the caller's Provider with last_login refreshed; NotFoundError if not registered."""
        identity = self._verifier.verify(credential)
        if self._providers.get_by_subject_id(identity.subject_id) is None:
            raise NotFoundError("Provider", identity.subject_id)
        return self._providers.update_last_login(identity.subject_id)

    # PUBLIC_INTERFACE
    def current(self, credential: str) -> Provider:
        """Return the caller's Provider without touching last_login."""
        identity = self._verifier.verify(credential)
        provider = self._providers.get_by_subject_id(identity.subject_id)
        if provider is None:
            raise NotFoundError("Provider", identity.subject_id)
        return provider
