from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from src.unicore.db.repository import DocumentRepository
from src.unicore.errors import InvalidInputError, NotFoundError
from src.unicore.schemas.common import utc_now
from src.unicore.schemas.providers import Provider

logger = logging.getLogger(__name__)


class ProviderStore:
    """
    Provider accounts keyed by identity-provider subject id.

    The repository does not enforce one document per subject id: `create` overwrites.
    Callers must check `get_by_subject_id` first (AuthService.register does).
    Providers are never deleted.
    """

    def __init__(self, repository: DocumentRepository[Provider]):
        self._repository = repository

    # PUBLIC_INTERFACE
    def get_by_subject_id(self, subject_id: str) -> Optional[Provider]:
        """Return the provider for a subject id, or None."""
        if not subject_id:
            return None
        return self._repository.get(subject_id)

    # PUBLIC_INTERFACE
    def create(self, name: str, email: str, subject_id: str) -> Provider:
        """Create (or overwrite) the provider document for subject_id."""
        if not (name or "").strip():
            raise InvalidInputError("name is required")
        if not (subject_id or "").strip():
            raise InvalidInputError("subject id is required")

        now = utc_now()
        provider = Provider(
            subject_id=subject_id,
            id=str(uuid4()),
            name=name.strip(),
            email=(email or "").strip(),
            created_at=now,
            last_login=now,
        )
        self._repository.create(provider)
        logger.info("Created provider id=%s subject=%s", provider.id, subject_id)
        return provider

    # PUBLIC_INTERFACE
    def update_last_login(self, subject_id: str) -> Provider:
        """Refresh last_login for an existing provider; NotFoundError if there is none."""
        provider = self.get_by_subject_id(subject_id)
        if provider is None:
            raise NotFoundError("Provider", subject_id)

        provider.last_login = utc_now()
        self._repository.update(subject_id, Provider(last_login=provider.last_login))
        return provider
