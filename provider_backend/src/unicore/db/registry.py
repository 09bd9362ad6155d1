from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from pymongo.database import Database

from src.unicore.db.codecs import PAYOUT_CODEC, PROVIDER_CODEC, VIRTUAL_MACHINE_CODEC
from src.unicore.db.documents import DocumentCodec
from src.unicore.db.repository import DocumentRepository, IdRule

logger = logging.getLogger(__name__)


def collection_name_for(model: Type[Any]) -> str:
    """Derive a collection name from a class name: VirtualMachine -> virtual_machines."""
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", model.__name__).lower()
    return snake if snake.endswith("s") else snake + "s"


@dataclass(frozen=True)
class RepositoryBinding:
    """One entity type bound to its collection and optional id rule."""

    codec: DocumentCodec
    collection_name: str
    id_rule: Optional[IdRule] = None


class RepositoryRegistry:
    """
    Binds entity types to repositories over a single database.

    Repositories are created once at registration; they are stateless apart from the
    collection handle, so a single instance per entity type is shared by all callers.
    """

    def __init__(self, db: Database):
        self._db = db
        self._bindings: Dict[type, RepositoryBinding] = {}
        self._repositories: Dict[type, DocumentRepository] = {}

    # PUBLIC_INTERFACE
    def register(
        self,
        codec: DocumentCodec,
        collection_name: Optional[str] = None,
        id_rule: Optional[IdRule] = None,
    ) -> DocumentRepository:
        """Bind codec.model to a collection (derived from the class name when not given)."""
        name = (collection_name or "").strip() or collection_name_for(codec.model)
        binding = RepositoryBinding(codec=codec, collection_name=name, id_rule=id_rule)
        repository = DocumentRepository(self._db[name], codec, id_rule)
        self._bindings[codec.model] = binding
        self._repositories[codec.model] = repository
        logger.debug("Registered repository model=%s collection=%s custom_id=%s", codec.entity_name, name, id_rule is not None)
        return repository

    # PUBLIC_INTERFACE
    def repository(self, model: Type[Any]) -> DocumentRepository:
        """Return the repository bound to model; raises KeyError if it was never registered."""
        try:
            return self._repositories[model]
        except KeyError:
            raise KeyError(f"no repository registered for {model.__name__}") from None

    def binding(self, model: Type[Any]) -> RepositoryBinding:
        return self._bindings[model]

    def collection_names(self) -> Dict[str, str]:
        return {model.__name__: b.collection_name for model, b in self._bindings.items()}


# PUBLIC_INTERFACE
def build_default_registry(db: Database) -> RepositoryRegistry:
    """Registry with the three entity types: providers, virtual machines and payouts."""
    registry = RepositoryRegistry(db)
    registry.register(PROVIDER_CODEC, "providers", id_rule=lambda p: p.subject_id)
    registry.register(VIRTUAL_MACHINE_CODEC, "virtual_machines", id_rule=lambda vm: vm.vm_id)
    registry.register(PAYOUT_CODEC, "payouts")
    return registry
