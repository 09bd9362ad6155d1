from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Generic,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    TypeVar,
    Union,
)

from bson import ObjectId
from pymongo import ASCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from src.unicore.db.documents import KEY_FIELD, DocumentCodec, T
from src.unicore.db.query import EMPTY_QUERY, DocumentQuery
from src.unicore.errors import InvalidInputError, StorageError

logger = logging.getLogger(__name__)

R = TypeVar("R")
U = TypeVar("U")

IdRule = Callable[[Any], str]


class PageCursor:
    """
    Opaque continuation point for `DocumentRepository.page`.

    Wraps the key of the last document of a page. HTTP callers only ever see the token form.
    """

    __slots__ = ("_last_key",)

    def __init__(self, last_key: str):
        self._last_key = str(last_key)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PageCursor) and other._last_key == self._last_key

    def __hash__(self) -> int:
        return hash(self._last_key)

    def __repr__(self) -> str:
        return f"PageCursor({self._last_key!r})"

    def to_token(self, signing_key: bytes) -> str:
        """Serialize as `<key>.<mac>`, both base64url; only holders of signing_key can mint one."""
        payload = _b64encode(self._last_key.encode("utf-8"))
        return f"{payload}.{_b64encode(_mac(signing_key, payload))}"

    @classmethod
    def from_token(cls, token: str, signing_key: bytes) -> "PageCursor":
        """Parse a token produced by `to_token`; anything else is rejected as invalid input."""
        raw = (token or "").strip()
        if not raw:
            raise InvalidInputError("cursor must not be empty")
        payload, sep, signature = raw.rpartition(".")
        if not sep or not payload:
            raise InvalidInputError("cursor is malformed")
        try:
            valid = hmac.compare_digest(_b64decode(signature), _mac(signing_key, payload))
            key = _b64decode(payload).decode("utf-8") if valid else ""
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            raise InvalidInputError("cursor is malformed") from exc
        if not key:
            raise InvalidInputError("cursor is malformed")
        return cls(key)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _mac(signing_key: bytes, payload: str) -> bytes:
    return hmac.new(signing_key, payload.encode("ascii"), hashlib.sha256).digest()[:16]


class Page(NamedTuple):
    """One page of results; next_cursor is None only when the page is empty."""

    items: List[Any]
    next_cursor: Optional[PageCursor]


@contextmanager
def _storage_errors(operation: str, collection: str) -> Iterator[None]:
    """Translate driver failures into StorageError, keeping the original as the cause."""
    try:
        yield
    except PyMongoError as exc:
        logger.exception("Document store %s failed for collection=%s", operation, collection)
        raise StorageError(f"document store {operation} failed") from exc


def _new_document_id() -> str:
    return str(ObjectId())


class DocumentRepository(Generic[T]):
    """
    Generic access path to one collection of documents keyed by string ids.

    Holds no entity state: just the collection handle, the entity codec and the optional
    id-derivation rule. The collection handle is safe for concurrent use.
    """

    def __init__(self, collection: Collection, codec: DocumentCodec[T], id_rule: Optional[IdRule] = None):
        self._collection = collection
        self._codec = codec
        self._id_rule = id_rule

    @property
    def collection_name(self) -> str:
        return self._collection.name

    @property
    def codec(self) -> DocumentCodec[T]:
        return self._codec

    @property
    def has_id_rule(self) -> bool:
        return self._id_rule is not None

    # ---- CRUD ----

    # PUBLIC_INTERFACE
    def get(self, doc_id: str) -> Optional[T]:
        """Fetch a document by id. Returns None when it does not exist."""
        with _storage_errors("get", self.collection_name):
            doc = self._collection.find_one({KEY_FIELD: doc_id})
        return self._codec.from_document(doc) if doc else None

    # PUBLIC_INTERFACE
    def list(self) -> List[T]:
        """Fetch every document in the collection (intended for small collections)."""
        with _storage_errors("list", self.collection_name):
            docs = list(self._collection.find({}))
        return [self._codec.from_document(d) for d in docs]

    # PUBLIC_INTERFACE
    def create(self, entity: T) -> str:
        """
        Persist a new entity and return its id.

        With an id rule the document at rule(entity) is fully replaced (no uniqueness check);
        without one a fresh id is generated.
        """
        body = self._codec.to_document(entity)
        with _storage_errors("create", self.collection_name):
            if self._id_rule is not None:
                doc_id = self._derive_id(entity)
                self._collection.replace_one({KEY_FIELD: doc_id}, body, upsert=True)
            else:
                doc_id = _new_document_id()
                self._collection.insert_one({KEY_FIELD: doc_id, **body})
        return doc_id

    # PUBLIC_INTERFACE
    def update(self, doc_id: str, entity: Union[T, Mapping[str, Any]]) -> None:
        """
        Merge-write the fields set on `entity` onto the document at doc_id.

        Fields not present in the write are left untouched. A missing document is created,
        so callers needing strict update semantics must check existence first.
        """
        fields = self._codec.to_document(entity, partial=True)
        if not fields:
            logger.debug("Skipping empty merge write for %s/%s", self.collection_name, doc_id)
            return
        with _storage_errors("update", self.collection_name):
            self._collection.update_one({KEY_FIELD: doc_id}, {"$set": fields}, upsert=True)

    # PUBLIC_INTERFACE
    def update_if(
        self, doc_id: str, expected: Mapping[str, Any], entity: Union[T, Mapping[str, Any]]
    ) -> bool:
        """
        Merge-write `entity` only while the stored document still holds the `expected` values.

        The check and the write are one atomic document update. Returns False when nothing
        matched (missing document, or a concurrent writer changed an expected field); never upserts.
        """
        fields = self._codec.to_document(entity, partial=True)
        match = {KEY_FIELD: doc_id, **self._codec.match_filter(expected)}
        with _storage_errors("update", self.collection_name):
            if not fields:
                return self._collection.find_one(match) is not None
            result = self._collection.update_one(match, {"$set": fields})
        return result.matched_count > 0

    # PUBLIC_INTERFACE
    def delete(self, doc_id: str) -> None:
        """Remove a document; deleting a missing id is not an error."""
        with _storage_errors("delete", self.collection_name):
            self._collection.delete_one({KEY_FIELD: doc_id})

    # ---- Queries ----

    # PUBLIC_INTERFACE
    def where_equal(self, field_name: str, value: Any) -> List[T]:
        """Return all documents whose field equals value exactly."""
        return self.fetch(self.query().where_equal(field_name, value))

    # PUBLIC_INTERFACE
    def query(self) -> DocumentQuery:
        """Base query over the whole collection, to be refined by callers."""
        return EMPTY_QUERY

    # PUBLIC_INTERFACE
    def fetch(self, query: DocumentQuery) -> List[T]:
        """Execute a refined query and deserialize every match."""
        rename = self._codec.field_name
        with _storage_errors("query", self.collection_name):
            cursor = self._collection.find(query.to_filter(rename))
            sort = query.to_sort(rename)
            if sort:
                cursor = cursor.sort(sort)
            if query.max_results is not None:
                cursor = cursor.limit(query.max_results)
            docs = list(cursor)
        return [self._codec.from_document(d) for d in docs]

    # PUBLIC_INTERFACE
    def first_matching(self, refine: Callable[[DocumentQuery], DocumentQuery]) -> Optional[T]:
        """Apply `refine` to the base query, run it with limit 1 and return the first match or None."""
        matches = self.fetch(refine(self.query()).limit(1))
        return matches[0] if matches else None

    # PUBLIC_INTERFACE
    def page(self, page_size: int, cursor: Optional[PageCursor] = None) -> Page:
        """
        Return up to page_size documents in key order, strictly after `cursor` when given.

        A page shorter than page_size (or empty) is the end-of-data signal; pages are not a
        consistent snapshot of the collection.
        """
        if int(page_size) < 1:
            raise InvalidInputError("page_size must be at least 1")
        spec = {KEY_FIELD: {"$gt": cursor._last_key}} if cursor is not None else {}
        with _storage_errors("page", self.collection_name):
            docs = list(self._collection.find(spec).sort(KEY_FIELD, ASCENDING).limit(int(page_size)))
        items = [self._codec.from_document(d) for d in docs]
        next_cursor = PageCursor(docs[-1][KEY_FIELD]) if docs else None
        return Page(items, next_cursor)

    # ---- Transactions ----

    # PUBLIC_INTERFACE
    def run_transaction(self, fn: Callable[["Transaction[T]"], R]) -> R:
        """
        Run fn against a transaction handle and return its result.

        Reads see a snapshot, all writes commit atomically, and the driver re-invokes fn from the
        start on transient errors and write conflicts. fn must therefore be retry-safe: no
        external side effects (HTTP calls, emails) inside it.
        """
        client = self._collection.database.client
        with _storage_errors("transaction", self.collection_name):
            with client.start_session() as session:
                return session.with_transaction(lambda s: fn(Transaction(self, s)))

    def _derive_id(self, entity: T) -> str:
        assert self._id_rule is not None
        doc_id = str(self._id_rule(entity) or "").strip()
        if not doc_id:
            raise InvalidInputError(f"{self._codec.entity_name} id must not be empty")
        return doc_id


class Transaction(Generic[T]):
    """
    Read/write handle bound to one repository and one client session.

    Driver errors are deliberately left untranslated here so `with_transaction` can still
    recognize its retryable error labels; `run_transaction` translates them on the way out.
    """

    def __init__(self, repository: DocumentRepository[T], session: ClientSession):
        self._repository = repository
        self._session = session

    def on(self, repository: DocumentRepository[U]) -> "Transaction[U]":
        """Handle for another repository inside the same transaction."""
        return Transaction(repository, self._session)

    def get(self, doc_id: str) -> Optional[T]:
        repo = self._repository
        doc = repo._collection.find_one({KEY_FIELD: doc_id}, session=self._session)
        return repo.codec.from_document(doc) if doc else None

    def create(self, entity: T) -> str:
        repo = self._repository
        body = repo.codec.to_document(entity)
        if repo.has_id_rule:
            doc_id = repo._derive_id(entity)
            repo._collection.replace_one({KEY_FIELD: doc_id}, body, upsert=True, session=self._session)
        else:
            doc_id = _new_document_id()
            repo._collection.insert_one({KEY_FIELD: doc_id, **body}, session=self._session)
        return doc_id

    def set(self, doc_id: str, entity: Union[T, Mapping[str, Any]], merge: bool = True) -> None:
        """Write entity at doc_id; merge=False replaces the whole document."""
        repo = self._repository
        if merge:
            fields = repo.codec.to_document(entity, partial=True)
            if fields:
                repo._collection.update_one(
                    {KEY_FIELD: doc_id}, {"$set": fields}, upsert=True, session=self._session
                )
        else:
            body = repo.codec.to_document(entity)
            repo._collection.replace_one({KEY_FIELD: doc_id}, body, upsert=True, session=self._session)

    def delete(self, doc_id: str) -> None:
        self._repository._collection.delete_one({KEY_FIELD: doc_id}, session=self._session)
