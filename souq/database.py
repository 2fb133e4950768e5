import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

# This file holds the document store, its per-document locks and the
# transaction scope used by every multi-document mutation.

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]

PRODUCTS = "products"
CATEGORIES = "categories"
ORDERS = "orders"
USERS = "users"


class DuplicateKeyError(Exception):
    def __init__(self, collection: str, field: str, value: Any):
        super().__init__(f"duplicate key {collection}.{field}={value!r}")
        self.collection = collection
        self.field = field
        self.value = value


class LockNotHeldError(RuntimeError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def lock_key(collection: str, doc_id: str) -> str:
    return f"{collection}:{doc_id}"


def get_path(doc: Document, path: str) -> Any:
    """Read a dotted path (``name.en``) out of a nested document."""
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(doc: Document, filter_dict: Optional[Dict[str, Any]], where: Optional[Predicate]) -> bool:
    if filter_dict:
        for key, expected in filter_dict.items():
            if get_path(doc, key) != expected:
                return False
    if where is not None and not where(doc):
        return False
    return True


def _sort_key(path: str):
    # None sorts before any value
    def key(doc: Document):
        value = get_path(doc, path)
        return (value is not None, value if value is not None else 0)
    return key


async def _suspend() -> None:
    # every store call is a suspension point, like a network round trip
    await asyncio.sleep(0)


class DocumentStore:
    """In-memory document store with unique indexes and transactions.

    Reads always see committed state. Writes made through a ``Transaction`` are
    buffered and applied together at commit, so a failed transaction leaves
    nothing behind.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._unique: Dict[str, List[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # ---------------------------
    # Setup
    # ---------------------------
    def create_unique_index(self, collection: str, field: str) -> None:
        fields = self._unique.setdefault(collection, [])
        if field not in fields:
            fields.append(field)

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Hand out the lock for ``key``; every call must be paired with ``_drop_lock``."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return self._locks[key]

    def _drop_lock(self, key: str) -> None:
        # forget the lock once nobody holds or waits on it
        users = self._lock_users.get(key, 0) - 1
        if users > 0:
            self._lock_users[key] = users
            return
        self._lock_users.pop(key, None)
        self._locks.pop(key, None)

    def _docs(self, collection: str) -> Dict[str, Document]:
        return self._collections.setdefault(collection, {})

    # ---------------------------
    # Reads
    # ---------------------------
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        await _suspend()
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_one(
        self,
        collection: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        where: Optional[Predicate] = None,
    ) -> Optional[Document]:
        await _suspend()
        for doc in self._docs(collection).values():
            if _matches(doc, filter_dict, where):
                return copy.deepcopy(doc)
        return None

    async def find(
        self,
        collection: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        where: Optional[Predicate] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        await _suspend()
        out = [doc for doc in self._docs(collection).values() if _matches(doc, filter_dict, where)]
        # apply the least significant key first, python's sort is stable
        for field, direction in reversed(sort or []):
            out.sort(key=_sort_key(field), reverse=direction < 0)
        if skip:
            out = out[skip:]
        if limit is not None:
            out = out[:limit]
        return [copy.deepcopy(doc) for doc in out]

    async def count(
        self,
        collection: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        where: Optional[Predicate] = None,
    ) -> int:
        await _suspend()
        return sum(1 for doc in self._docs(collection).values() if _matches(doc, filter_dict, where))

    # ---------------------------
    # Single-document writes (no transaction)
    # ---------------------------
    async def insert_one(self, collection: str, doc: Document) -> Document:
        await _suspend()
        payload = self._stamp_new(doc)
        self._commit({(collection, payload["id"]): payload})
        return copy.deepcopy(payload)

    async def update_one(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Optional[Document]:
        await _suspend()
        current = self._docs(collection).get(doc_id)
        if current is None:
            return None
        updated = {**copy.deepcopy(current), **copy.deepcopy(changes), "updated_at": utcnow()}
        self._commit({(collection, doc_id): updated})
        return copy.deepcopy(updated)

    def transaction(self, *keys: str) -> "Transaction":
        return Transaction(self, keys)

    # ---------------------------
    # Internals
    # ---------------------------
    @staticmethod
    def _stamp_new(doc: Document) -> Document:
        payload = copy.deepcopy(doc)
        payload.setdefault("id", new_id())
        now = utcnow()
        payload.setdefault("created_at", now)
        payload["updated_at"] = now
        return payload

    def _check_unique(self, writes: Dict[Tuple[str, str], Document]) -> None:
        for (collection, doc_id), doc in writes.items():
            for field in self._unique.get(collection, []):
                value = doc.get(field)
                if value is None:
                    continue
                for other_id, other in self._docs(collection).items():
                    if other_id == doc_id or (collection, other_id) in writes:
                        continue
                    if other.get(field) == value:
                        raise DuplicateKeyError(collection, field, value)
                for (other_coll, other_id), other in writes.items():
                    if other_coll == collection and other_id != doc_id and other.get(field) == value:
                        raise DuplicateKeyError(collection, field, value)

    def _commit(
        self,
        writes: Dict[Tuple[str, str], Document],
        changes: Optional[Dict[Tuple[str, str], Dict[str, Any]]] = None,
    ) -> None:
        # no await between reading the committed docs, the unique check and the writes
        writes = dict(writes)
        for (collection, doc_id), fields in (changes or {}).items():
            base = writes.get((collection, doc_id)) or self._docs(collection).get(doc_id)
            if base is None:
                raise KeyError(lock_key(collection, doc_id))
            writes[(collection, doc_id)] = {**base, **fields}
        self._check_unique(writes)
        for (collection, doc_id), doc in writes.items():
            self._docs(collection)[doc_id] = doc


class Transaction:
    """Transactional scope over a ``DocumentStore``.

    Locks for ``keys`` are taken in sorted order on entry and held until exit.
    Reads inside the scope see the transaction's own pending writes; updates
    are only allowed on documents whose lock is held. Leaving the scope with
    an exception discards every pending write.

    Updates are buffered as changed fields only and laid over the committed
    document at commit, so fields written outside the transaction meanwhile
    are kept.
    """

    def __init__(self, store: DocumentStore, keys: Iterable[str]):
        self._store = store
        self._keys = sorted(set(keys))
        self._held: List[str] = []
        self._writes: Dict[Tuple[str, str], Document] = {}
        self._changes: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.committed = False

    async def __aenter__(self) -> "Transaction":
        try:
            for key in self._keys:
                await self._acquire(key)
        except BaseException:
            self._release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                self._store._commit(self._writes, self._changes)
                self.committed = True
            else:
                pending = len(self._writes) + len(self._changes)
                logger.debug("transaction rolled back (%s, %d pending writes)", exc_type.__name__, pending)
                self._writes.clear()
                self._changes.clear()
        finally:
            self._release()
        return False

    async def _acquire(self, key: str) -> None:
        lock = self._store._get_lock(key)
        try:
            await lock.acquire()
        except BaseException:
            self._store._drop_lock(key)
            raise
        self._held.append(key)

    def _release(self) -> None:
        for key in reversed(self._held):
            self._store._locks[key].release()
            self._store._drop_lock(key)
        self._held.clear()

    def holds(self, collection: str, doc_id: str) -> bool:
        return lock_key(collection, doc_id) in self._held

    async def lock(self, collection: str, doc_id: str) -> None:
        """Take one more lock after entry; callers must keep a global key order."""
        key = lock_key(collection, doc_id)
        if key in self._held:
            return
        await self._acquire(key)

    def _pending(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._writes.get((collection, doc_id))
        if doc is not None:
            return doc
        doc = self._store._docs(collection).get(doc_id)
        if doc is None:
            return None
        return {**doc, **self._changes.get((collection, doc_id), {})}

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        await _suspend()
        doc = self._pending(collection, doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert_one(self, collection: str, doc: Document) -> Document:
        await _suspend()
        payload = self._store._stamp_new(doc)
        pending = {key: self._pending(*key) for key in self._changes}
        pending.update(self._writes)
        pending[(collection, payload["id"])] = payload
        self._store._check_unique(pending)
        self._writes[(collection, payload["id"])] = payload
        return copy.deepcopy(payload)

    async def update_one(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Document:
        key = (collection, doc_id)
        if not self.holds(collection, doc_id) and key not in self._writes:
            raise LockNotHeldError(f"{lock_key(collection, doc_id)} is not locked by this transaction")
        await _suspend()
        if self._pending(collection, doc_id) is None:
            raise KeyError(lock_key(collection, doc_id))
        fields = {**copy.deepcopy(changes), "updated_at": utcnow()}
        if key in self._writes:
            self._writes[key].update(fields)
        else:
            self._changes.setdefault(key, {}).update(fields)
        return copy.deepcopy(self._pending(collection, doc_id))


def create_store() -> DocumentStore:
    store = DocumentStore()
    store.create_unique_index(USERS, "email")
    store.create_unique_index(PRODUCTS, "sku")
    store.create_unique_index(CATEGORIES, "slug")
    store.create_unique_index(ORDERS, "order_number")
    return store
