"""Document store contract plus the in-memory and SQLite backends.

Every backend pushes *full* snapshots: after any successful write, each
subscription on the touched collection receives the complete, freshly sorted
list of documents it selects. Writes notify before they return, so a caller
that awaited a write can trust the next snapshot it reads.
"""
from __future__ import annotations

import itertools
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from .db import get_connection, initialize_db
from .errors import StoreError
from .timeutils import parse_instant

logger = logging.getLogger(__name__)

Snapshot = List[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Increment:
    """Update sentinel: add ``amount`` to the stored numeric value."""

    amount: float


@dataclass(frozen=True)
class SnapshotKey:
    collection: str
    field: str
    value: str
    order_by: str = "start_time"
    descending: bool = True

    def select(self, documents: Snapshot) -> Snapshot:
        matches = [dict(doc) for doc in documents if doc.get(self.field) == self.value]
        matches.sort(key=lambda doc: parse_instant(doc.get(self.order_by)) or _EPOCH, reverse=self.descending)
        return matches


def apply_fields(record: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(record)
    for name, value in fields.items():
        if isinstance(value, Increment):
            try:
                current = float(updated.get(name) or 0)
            except (TypeError, ValueError):
                current = 0.0
            updated[name] = current + value.amount
        else:
            updated[name] = value
    return updated


@dataclass
class _Subscription:
    key: SnapshotKey
    callback: SnapshotCallback


class DocumentStore(ABC):
    """Collaborator contract consumed by the timer engine and reminder scheduler."""

    def __init__(self) -> None:
        self._subscriptions: Dict[int, _Subscription] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, key: SnapshotKey, on_snapshot: SnapshotCallback) -> Unsubscribe:
        token = next(self._tokens)
        self._subscriptions[token] = _Subscription(key=key, callback=on_snapshot)
        self._deliver_initial(token)

        def unsubscribe() -> None:
            self._subscriptions.pop(token, None)

        return unsubscribe

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _deliver(self, subscription: _Subscription, documents: Snapshot) -> None:
        try:
            subscription.callback(subscription.key.select(documents))
        except Exception:
            logger.exception(
                "snapshot subscriber failed",
                extra={"collection": subscription.key.collection, "field": subscription.key.field},
            )

    def _notify(self, collection: str, documents: Snapshot) -> None:
        for token, subscription in list(self._subscriptions.items()):
            if subscription.key.collection != collection:
                continue
            if token not in self._subscriptions:
                continue
            self._deliver(subscription, documents)

    @abstractmethod
    def _deliver_initial(self, token: int) -> None:
        ...

    @abstractmethod
    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        ...


class MemoryDocumentStore(DocumentStore):
    """In-process backend; ``fail_next`` lets tests simulate store failures."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._failures: Dict[str, str] = {}
        self.write_count = 0

    def fail_next(self, operation: str, detail: str = "simulated failure") -> None:
        self._failures[operation] = detail

    def documents(self, collection: str) -> Snapshot:
        return [dict(doc) for doc in self._collections.get(collection, {}).values()]

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collections.get(collection, {}).get(record_id)
        return dict(doc) if doc is not None else None

    def _maybe_fail(self, operation: str) -> None:
        detail = self._failures.pop(operation, None)
        if detail is not None:
            raise StoreError(operation, detail)

    def _deliver_initial(self, token: int) -> None:
        subscription = self._subscriptions[token]
        self._deliver(subscription, self.documents(subscription.key.collection))

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        self._maybe_fail("create")
        record_id = record.get("id") or uuid4().hex
        self._collections.setdefault(collection, {})[record_id] = {**record, "id": record_id}
        self.write_count += 1
        self._notify(collection, self.documents(collection))
        return record_id

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        self._maybe_fail("update")
        docs = self._collections.get(collection, {})
        if record_id not in docs:
            raise StoreError("update", f"{collection}/{record_id} not found")
        docs[record_id] = apply_fields(docs[record_id], fields)
        self.write_count += 1
        self._notify(collection, self.documents(collection))

    async def delete(self, collection: str, record_id: str) -> None:
        self._maybe_fail("delete")
        self._collections.get(collection, {}).pop(record_id, None)
        self.write_count += 1
        self._notify(collection, self.documents(collection))


class SqliteDocumentStore(DocumentStore):
    """Documents kept as JSON rows in the local SQLite database."""

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__()
        self._path = path
        initialize_db(path)

    def documents(self, collection: str) -> Snapshot:
        with get_connection(self._path) as conn:
            rows = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ?",
                (collection,),
            ).fetchall()
        docs: Snapshot = []
        for row in rows:
            try:
                payload = json.loads(row[1])
            except json.JSONDecodeError:
                logger.warning("corrupted document skipped", extra={"collection": collection, "id": row[0]})
                continue
            payload["id"] = row[0]
            docs.append(payload)
        return docs

    def _deliver_initial(self, token: int) -> None:
        subscription = self._subscriptions[token]
        self._deliver(subscription, self.documents(subscription.key.collection))

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        record_id = record.get("id") or uuid4().hex
        now = datetime.now(tz=timezone.utc).isoformat()
        payload = {**record, "id": record_id}
        try:
            with get_connection(self._path) as conn:
                conn.execute(
                    """
                    INSERT INTO documents (id, collection, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (record_id, collection, json.dumps(payload), now, now),
                )
                conn.commit()
        except Exception as exc:
            raise StoreError("create", str(exc)) from exc
        self._notify(collection, self.documents(collection))
        return record_id

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        now = datetime.now(tz=timezone.utc).isoformat()
        try:
            with get_connection(self._path) as conn:
                row = conn.execute(
                    "SELECT data FROM documents WHERE collection = ? AND id = ?",
                    (collection, record_id),
                ).fetchone()
                if row is None:
                    raise StoreError("update", f"{collection}/{record_id} not found")
                updated = apply_fields(json.loads(row[0]), fields)
                conn.execute(
                    "UPDATE documents SET data = ?, updated_at = ? WHERE collection = ? AND id = ?",
                    (json.dumps(updated), now, collection, record_id),
                )
                conn.commit()
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError("update", str(exc)) from exc
        self._notify(collection, self.documents(collection))

    async def delete(self, collection: str, record_id: str) -> None:
        try:
            with get_connection(self._path) as conn:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (collection, record_id),
                )
                conn.commit()
        except Exception as exc:
            raise StoreError("delete", str(exc)) from exc
        self._notify(collection, self.documents(collection))

