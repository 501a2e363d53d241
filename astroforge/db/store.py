"""
State Store

The single, globally sequential state log every ledger writes through.

The StateStore is responsible for:
- Serializing all state-changing operations (one re-entrant write lock)
- All-or-nothing execution: every write is journaled and undone on failure
- Publishing the facts of committed operations to the EventJournal
- Allocating ledger addresses

The ledgers retain responsibility for:
- Authorization (role checks)
- Business rules and their error kinds

TRANSACTION CONTRACT:
All writes MUST happen inside the begin() context manager:

    with store.begin("token.transfer") as ctx:
        table.set(key, value)
        ctx.emit(EventType.TRANSFER, source, payload)

A begin() nested inside another (forge charging its fee on the token
ledger) joins the outer transaction: the outermost block decides whether
everything commits or everything is rolled back.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Iterator, Optional
from uuid import uuid4

from eth_utils import keccak, to_checksum_address
from pydantic import BaseModel

from ..core.hasher import Hasher
from ..observability import get_logger, get_metrics
from ..schemas import EventType, LedgerEvent

logger = get_logger(__name__)

_MISSING = object()


# ============================================================
# EXCEPTIONS
# ============================================================

class StoreError(Exception):
    """Base exception for state store errors."""
    pass


class ChainIntegrityError(StoreError):
    """Raised when the event journal's chain is broken."""
    pass


# ============================================================
# STATE TABLES
# ============================================================

class StateTable:
    """
    A journaled mapping owned by one ledger.

    Reads take the store lock, so they wait for a running transaction to
    commit or roll back and never see its intermediate writes. Writes are
    only legal inside a transaction of the owning store, and each write
    records the previous value so the transaction can restore it.
    """

    def __init__(self, store: "StateStore", name: str):
        self._store = store
        self.name = name
        self._data: dict[Any, Any] = {}

    def get(self, key: Any, default: Any = None) -> Any:
        with self._store._lock:
            return self._data.get(key, default)

    def __contains__(self, key: Any) -> bool:
        with self._store._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._store._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[Any]:
        with self._store._lock:
            return iter(list(self._data))

    def items(self) -> list[tuple[Any, Any]]:
        with self._store._lock:
            return list(self._data.items())

    def set(self, key: Any, value: Any) -> None:
        ctx = self._store._require_transaction(self.name)
        ctx._record(self, key, self._data.get(key, _MISSING))
        self._data[key] = value

    def delete(self, key: Any) -> None:
        ctx = self._store._require_transaction(self.name)
        if key in self._data:
            ctx._record(self, key, self._data[key])
            del self._data[key]

    def insert_if_absent(self, key: Any, value: Any) -> bool:
        """
        Insert key only if it is not present.

        Returns False (and writes nothing) when the key already exists.
        Check and insert happen under the store's write lock.
        """
        ctx = self._store._require_transaction(self.name)
        if key in self._data:
            return False
        ctx._record(self, key, _MISSING)
        self._data[key] = value
        return True

    def _restore(self, key: Any, previous: Any) -> None:
        if previous is _MISSING:
            self._data.pop(key, None)
        else:
            self._data[key] = previous

    def snapshot(self) -> dict[Any, Any]:
        with self._store._lock:
            return dict(self._data)


# ============================================================
# TRANSACTION CONTEXT
# ============================================================

@dataclass
class PendingEvent:
    """A fact emitted inside a transaction, published only on commit."""
    event_type: EventType
    source: str
    payload: dict[str, Any]


@dataclass
class TransactionContext:
    """
    State of one running operation.

    Holds the undo log and the facts waiting for commit. Owned by the
    thread that opened it; the store refuses writes from any other thread.
    """
    operation: str
    _store: "StateStore"
    _thread: int = field(default_factory=threading.get_ident)
    _undo: list[tuple[StateTable, Any, Any]] = field(default_factory=list)
    _pending: list[PendingEvent] = field(default_factory=list)

    def emit(self, event_type: EventType, source: str, payload: BaseModel) -> None:
        """Queue a fact; it is published only if the transaction commits."""
        self._pending.append(
            PendingEvent(
                event_type=event_type,
                source=source,
                payload=payload.model_dump(mode="json"),
            )
        )

    @property
    def pending_events(self) -> list[PendingEvent]:
        return list(self._pending)

    def _record(self, table: StateTable, key: Any, previous: Any) -> None:
        self._undo.append((table, key, previous))

    def _rollback(self) -> None:
        for table, key, previous in reversed(self._undo):
            table._restore(key, previous)
        self._undo.clear()
        self._pending.clear()


# ============================================================
# EVENT JOURNAL
# ============================================================

@dataclass
class ChainHead:
    """Current state of the journal's chain head."""
    last_sequence: int  # -1 means empty journal
    last_event_hash: Optional[str]

    @property
    def next_sequence(self) -> int:
        return self.last_sequence + 1

    @property
    def is_empty(self) -> bool:
        return self.last_sequence == -1


class EventJournal:
    """
    Append-only, hash-chained log of committed facts.

    Subscribers are called in order for each appended event. A failing
    subscriber is logged and does not affect the ledger or other
    subscribers: the state change it observes has already committed.
    """

    def __init__(self):
        self._events: list[LedgerEvent] = []
        self._head = ChainHead(last_sequence=-1, last_event_hash=None)
        self._subscribers: list[Callable[[LedgerEvent], None]] = []

    def subscribe(self, callback: Callable[[LedgerEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LedgerEvent], None]) -> None:
        self._subscribers.remove(callback)

    def append(self, pending: list[PendingEvent]) -> list[LedgerEvent]:
        """
        Chain and append a committed batch of facts.

        The whole batch is hashed before anything is appended, so a batch
        that cannot be serialized leaves the journal untouched.
        """
        appended = []
        head = self._head
        for item in pending:
            sequence = head.next_sequence
            previous_hash = head.last_event_hash
            body = {
                "sequence_number": sequence,
                "event_type": item.event_type,
                "source": item.source,
                "payload": item.payload,
            }
            event = LedgerEvent(
                event_id=uuid4(),
                sequence_number=sequence,
                event_type=item.event_type,
                source=item.source,
                payload=item.payload,
                previous_event_hash=previous_hash,
                event_hash=Hasher.hash_event(body, previous_hash),
                created_at=datetime.now(timezone.utc),
            )
            event.validate_chain_rules()
            head = ChainHead(last_sequence=sequence, last_event_hash=event.event_hash)
            appended.append(event)

        self._events.extend(appended)
        self._head = head
        return appended

    def publish(self, events: list[LedgerEvent]) -> None:
        """Deliver committed events to subscribers, in order."""
        for event in events:
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Journal subscriber failed",
                        sequence_number=event.sequence_number,
                        event_type=event.event_type.value,
                    )

    def list_all(self) -> list[LedgerEvent]:
        return list(self._events)

    def list_for_source(self, source: str) -> list[LedgerEvent]:
        return [e for e in self._events if e.source == source]

    def list_by_type(self, event_type: EventType) -> list[LedgerEvent]:
        return [e for e in self._events if e.event_type == event_type]

    def get_head(self) -> ChainHead:
        return ChainHead(
            last_sequence=self._head.last_sequence,
            last_event_hash=self._head.last_event_hash,
        )

    @property
    def event_count(self) -> int:
        return len(self._events)

    def verify_chain_integrity(self) -> bool:
        """Re-hash every event and check sequence and linkage."""
        prev_hash = None
        for expected_sequence, event in enumerate(self._events):
            if event.sequence_number != expected_sequence:
                return False
            if event.previous_event_hash != prev_hash:
                return False
            if not Hasher.verify_chain(event.hash_body(), event.event_hash, prev_hash):
                return False
            prev_hash = event.event_hash
        return True

    def require_chain_integrity(self) -> None:
        if not self.verify_chain_integrity():
            raise ChainIntegrityError("Event journal failed chain verification")


# ============================================================
# STATE STORE
# ============================================================

class StateStore:
    """
    Owner of every ledger table wired into one deployment.

    CONCURRENCY GUARANTEES:
    - One re-entrant lock serializes every operation end-to-end
    - A transaction is bound to the thread that opened it
    - Nested begin() calls join the running transaction
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: dict[str, StateTable] = {}
        self._ctx: Optional[TransactionContext] = None
        self._deployments = 0
        self.journal = EventJournal()

    def table(self, name: str) -> StateTable:
        """Create a new named table. Names are unique per store."""
        with self._lock:
            if name in self._tables:
                raise StoreError(f"Table {name!r} already exists")
            table = StateTable(self, name)
            self._tables[name] = table
            return table

    def deploy_address(self, label: str) -> str:
        """Allocate a fresh ledger address for this store."""
        with self._lock:
            nonce = self._deployments
            self._deployments += 1
        digest = keccak(text=f"astroforge:{id(self)}:{label}:{nonce}")
        return to_checksum_address(digest[-20:])

    @property
    def in_transaction(self) -> bool:
        ctx = self._ctx
        return ctx is not None and ctx._thread == threading.get_ident()

    def _require_transaction(self, table_name: str) -> TransactionContext:
        if not self.in_transaction:
            raise StoreError(
                f"Write to {table_name!r} outside a transaction. "
                "Use store.begin()."
            )
        return self._ctx

    @contextmanager
    def begin(self, operation: str = "operation") -> Generator[TransactionContext, None, None]:
        """
        Run one operation atomically.

        Yields the running TransactionContext. On any exception every
        write made since the outermost begin() is undone and queued facts
        are dropped; otherwise the facts are appended to the journal.
        """
        with self._lock:
            if self._ctx is not None:
                # Nested call on the owning thread: join the transaction
                yield self._ctx
                return

            ctx = TransactionContext(operation=operation, _store=self)
            self._ctx = ctx
            start = time.perf_counter()
            try:
                yield ctx
                committed = self.journal.append(ctx._pending)
            except BaseException as e:
                ctx._rollback()
                duration_ms = (time.perf_counter() - start) * 1000
                get_metrics().record_operation(duration_ms, committed=False)
                logger.warning(
                    f"{operation} rejected: {type(e).__name__}",
                    operation=operation,
                    error=type(e).__name__,
                    detail=str(e),
                )
                raise
            else:
                ctx._undo.clear()
                ctx._pending.clear()
                duration_ms = (time.perf_counter() - start) * 1000
                get_metrics().record_operation(duration_ms, committed=True)
                logger.debug(
                    f"{operation} committed",
                    operation=operation,
                    event_count=len(committed),
                    duration_ms=round(duration_ms, 2),
                )
            finally:
                self._ctx = None

            # Outside the transaction, still under the lock: subscribers
            # see facts in commit order and may start operations of their own.
            self.journal.publish(committed)

    @contextmanager
    def reading(self) -> Generator[None, None, None]:
        """Hold the write lock across a read that combines several lookups."""
        with self._lock:
            yield

    def snapshot(self) -> dict[str, dict[Any, Any]]:
        """Copy of every table, for audits and tests."""
        with self._lock:
            return {name: table.snapshot() for name, table in self._tables.items()}
