from __future__ import annotations


class UnicoreError(Exception):
    """Base class for all errors surfaced by the store and auth layers."""

    code = "error"


class InvalidInputError(UnicoreError):
    """Raised when required input is missing or out of range (before any persistence attempt)."""

    code = "invalid_input"


class ConflictError(UnicoreError):
    """Raised when an entity that must be unique already exists, or a state change is not allowed."""

    code = "conflict"


class NotFoundError(UnicoreError):
    """Raised when an operation requires an existing entity and none was found."""

    code = "not_found"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class AuthError(UnicoreError):
    """Raised when a credential cannot be verified or has expired."""

    code = "auth_failed"

    def __init__(self, message: str = "invalid or expired credential"):
        super().__init__(message)


class StorageError(UnicoreError):
    """Raised when the document store fails for infrastructural reasons (network, quota, permission)."""

    code = "storage_unavailable"
