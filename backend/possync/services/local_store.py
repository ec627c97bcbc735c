# Overview: Local store primitives; transactions, record access and the change feed behind live queries.

"""
Local Store Invariants (authoritative)

Storage:
- One table per synchronized kind (see models.SYNCED_MODELS), each indexed on
  (company_id, pos_id) and sync_status.
- The local store is the single shared resource. Presentation code never writes
  to it directly; all mutation goes through lifecycle_service or a mutator.

Transactions:
- transaction() groups reads and writes across tables with all-or-nothing commit.
- Any exception inside the block rolls the whole session back and re-raises.
- A write issued outside a declared transaction runs in its own single-record
  transaction, so a failure rolls back exactly that record's effect.
- Transactions do not nest; inner helpers (the *_inner functions in the
  services) run inside the caller's transaction.

Change feed:
- Every committed transaction that touched a synchronized table publishes a
  ChangeSet naming the touched kinds.
- signal=False marks housekeeping commits (sync reconciliation) that must not
  wake the sync engine again; live queries still re-evaluate on them.
- Subscribers run synchronously in the committing thread after commit. A
  subscriber that raises is logged and skipped; the commit stands and the
  remaining subscribers still run.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import SYNCED_MODELS, SyncedMixin


logger = logging.getLogger(__name__)

_KIND_BY_TABLE = {model.__tablename__: kind for kind, model in SYNCED_MODELS.items()}

_TX_ACTIVE = "possync.tx_active"
_TOUCHED = "possync.touched_kinds"


@event.listens_for(Session, "before_flush")
def _track_touched_kinds(session, flush_context, instances):
    touched = session.info.setdefault(_TOUCHED, set())
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, SyncedMixin):
            kind = _KIND_BY_TABLE.get(obj.__tablename__)
            if kind:
                touched.add(kind)


@dataclass(frozen=True)
class ChangeSet:
    kinds: frozenset
    signal: bool = True


class Subscription:
    """Handle returned by subscribe(); cancel() stops further notifications."""

    def __init__(self, feed: "ChangeFeed", kinds: frozenset | None, callback: Callable[[ChangeSet], None]):
        self._feed = feed
        self.kinds = kinds
        self.callback = callback
        self.active = True

    def matches(self, change: ChangeSet) -> bool:
        return self.kinds is None or bool(self.kinds & change.kinds)

    def cancel(self) -> None:
        self.active = False
        self._feed.remove(self)


class ChangeFeed:
    """Publish/subscribe registry of committed changes, one per application."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, kinds: Iterable[str] | None, callback: Callable[[ChangeSet], None]) -> Subscription:
        kinds_set = frozenset(kinds) if kinds is not None else None
        if kinds_set is not None:
            unknown = kinds_set - set(SYNCED_MODELS)
            if unknown:
                raise ValueError(f"unknown kinds: {', '.join(sorted(unknown))}")
        sub = Subscription(self, kinds_set, callback)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def publish(self, change: ChangeSet) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.active and s.matches(change)]
        for sub in targets:
            try:
                sub.callback(change)
            except Exception:
                # Already committed: log and keep notifying
                logger.exception("Change feed subscriber failed for %s", sorted(change.kinds))

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class LocalStore:
    """
    Flask extension wrapping the SQLAlchemy session with the local store contract.

    Per-application state (the change feed) lives in app.extensions["local_store"].
    """

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["local_store"] = ChangeFeed()

    @property
    def feed(self) -> ChangeFeed:
        return current_app.extensions["local_store"]

    def in_transaction(self) -> bool:
        return bool(db.session.info.get(_TX_ACTIVE))

    @contextmanager
    def transaction(self, *, signal: bool = True):
        """
        All-or-nothing unit of work across any number of tables.

        Yields the session. Commits on normal exit; on any exception rolls back
        and re-raises. After a successful commit, publishes the touched kinds.
        """
        session = db.session
        if session.info.get(_TX_ACTIVE):
            raise RuntimeError("local store transactions do not nest")

        session.info[_TX_ACTIVE] = True
        session.info[_TOUCHED] = set()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            touched = session.info.pop(_TOUCHED, set())
            session.info.pop(_TX_ACTIVE, None)

        if touched:
            self.feed.publish(ChangeSet(kinds=frozenset(touched), signal=signal))

    @contextmanager
    def _write_scope(self):
        if self.in_transaction():
            yield db.session
        else:
            with self.transaction() as session:
                yield session

    # Record primitives

    def get(self, model, pk):
        return db.session.get(model, pk)

    def query(self, model, *criteria, order_by=None) -> list:
        q = db.session.query(model).filter(*criteria)
        if order_by is not None:
            q = q.order_by(*order_by) if isinstance(order_by, (list, tuple)) else q.order_by(order_by)
        return q.all()

    def add(self, obj):
        with self._write_scope() as session:
            session.add(obj)
            session.flush()
        return obj

    def update(self, model, pk, patch: dict):
        with self._write_scope() as session:
            obj = session.get(model, pk)
            if obj is None:
                return None
            for key, value in patch.items():
                setattr(obj, key, value)
            session.flush()
        return obj

    def delete(self, model, pk) -> bool:
        with self._write_scope() as session:
            obj = session.get(model, pk)
            if obj is None:
                return False
            session.delete(obj)
            session.flush()
        return True

    # Change feed

    def subscribe(self, kinds: Iterable[str] | None, callback: Callable[[ChangeSet], None]) -> Subscription:
        return self.feed.subscribe(kinds, callback)

    def live(self, kinds: Iterable[str], evaluate: Callable[[], object], callback: Callable[[object], None]) -> Subscription:
        """
        Live query: emit evaluate() now and again after every committed change
        to one of `kinds`.
        """
        sub = self.feed.subscribe(kinds, lambda change: callback(evaluate()))
        callback(evaluate())
        return sub


local_store = LocalStore()
