# Overview: Sync engine; debounced, batched push of pending local changes to the remote authority.

"""
Sync Engine

================================================================================
STATE MACHINE (one cycle)
================================================================================

    IDLE --signal--> DEBOUNCING --timer--> FLUSHING --done--> IDLE

    signal while DEBOUNCING: the debounce timer restarts (bursts coalesce)
    signal while FLUSHING:   remembered; a new debounce cycle starts as soon
                             as the running flush completes

FLUSH:
1. Snapshot the active scope; without a session the cycle ends silently.
2. Collect every pending record of every synced kind in that scope.
3. Nothing pending: no network call.
4. One POST {companyId, posId, changes: {kind: [record, ...]}}.
5. On 2xx, one local transaction (signal=False): records marked _deleted are
   purged, the rest become 'synced'. A record whose version_id moved while the
   push was in flight stays 'pending' for the next cycle.
6. On failure nothing is touched; a retry signal is scheduled after
   SYNC_RETRY_INTERVAL_SECONDS (0 disables it).

Resending unacknowledged records is safe: the remote authority receives
whole records keyed by their client-generated ids.
================================================================================
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

import httpx
from flask import current_app, has_app_context

from ..errors import SyncFailureError
from ..extensions import db
from ..models import SYNCED_MODELS
from ..time_utils import utcnow, to_utc_z
from .concurrency import run_with_retry
from .local_store import ChangeSet, local_store
from .tenant_service import SessionProvider, TenantScope, scoped_query


logger = logging.getLogger(__name__)

IDLE = "idle"
DEBOUNCING = "debouncing"
FLUSHING = "flushing"


# =============================================================================
# Schedulers
# =============================================================================

class TimerScheduler:
    """Real wall-clock scheduler; each call runs on its own daemon timer thread."""

    def call_later(self, delay: float, callback: Callable[[], None]):
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class ScheduledCall:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual clock for deterministic tests. Nothing runs until advance() moves
    the clock past a call's due time.
    """

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(self.now + delay, callback)
        heapq.heappush(self._queue, (call.due, next(self._seq), call))
        return call

    @property
    def pending(self) -> list[ScheduledCall]:
        return [call for _, _, call in sorted(self._queue) if not call.cancelled]

    def advance(self, seconds: float = 0.0) -> int:
        """Move the clock forward, running every call that falls due. Returns the number run."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            self.now = max(self.now, due)
            call.callback()
            ran += 1
        self.now = target
        return ran


# =============================================================================
# Remote authority client
# =============================================================================

class RemoteClient:
    """Pushes change batches to the remote authority over HTTP."""

    def __init__(
        self,
        endpoint_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.endpoint_url = (endpoint_url or "").strip()
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(headers=headers, timeout=timeout, transport=transport)

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint_url)

    def push(self, payload: dict) -> httpx.Response:
        """
        POST one batch. Any transport error or non-2xx status raises
        SyncFailureError; the caller decides when to retry.
        """
        try:
            response = self._client.post(self.endpoint_url, json=payload)
        except httpx.HTTPError as exc:
            raise SyncFailureError(f"Sync request failed: {exc}") from exc
        if not response.is_success:
            raise SyncFailureError(
                f"Sync endpoint answered {response.status_code}",
                details={"status_code": response.status_code},
            )
        return response

    def close(self) -> None:
        self._client.close()


# =============================================================================
# Flush
# =============================================================================

@dataclass(frozen=True)
class PendingRecord:
    kind: str
    identity: str
    version_id: int
    deleted: bool
    wire: dict


@dataclass
class FlushResult:
    outcome: str  # ok | noop | failed | disabled | no_session | busy
    pushed: dict = field(default_factory=dict)
    synced: int = 0
    purged: int = 0
    kept_pending: int = 0
    error: str | None = None
    finished_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "pushed": dict(self.pushed),
            "synced": self.synced,
            "purged": self.purged,
            "kept_pending": self.kept_pending,
            "error": self.error,
            "finished_at": to_utc_z(self.finished_at),
        }


def collect_pending(scope: TenantScope) -> list[PendingRecord]:
    """Every pending record of every synced kind in scope, soft-deleted included."""
    records = []
    for kind, model in SYNCED_MODELS.items():
        rows = (
            scoped_query(model, scope, include_deleted=True)
            .filter(model.sync_status == "pending")
            .all()
        )
        for row in rows:
            records.append(PendingRecord(
                kind=kind,
                identity=row.sync_identity,
                version_id=row.version_id,
                deleted=bool(row.deleted),
                wire=row.to_wire(),
            ))
    return records


def pending_counts(scope: TenantScope) -> dict:
    counts = {}
    for kind, model in SYNCED_MODELS.items():
        counts[kind] = (
            scoped_query(model, scope, include_deleted=True)
            .filter(model.sync_status == "pending")
            .count()
        )
    return counts


def build_payload(scope: TenantScope, records: list[PendingRecord]) -> dict:
    changes: dict = {}
    for record in records:
        changes.setdefault(record.kind, []).append(record.wire)
    return {"companyId": scope.company_id, "posId": scope.pos_id, "changes": changes}


def reconcile(scope: TenantScope, records: list[PendingRecord]) -> tuple[int, int, int]:
    """
    Apply an acknowledged push in one local transaction that does not signal
    the engine again. Returns (synced, purged, kept_pending).
    """

    def _op():
        synced = purged = kept = 0
        with local_store.transaction(signal=False):
            for record in records:
                model = SYNCED_MODELS[record.kind]
                key_col = getattr(model, model.sync_key)
                obj = (
                    scoped_query(model, scope, include_deleted=True)
                    .filter(key_col == record.identity)
                    .first()
                )
                if obj is None:
                    continue
                if obj.version_id != record.version_id:
                    kept += 1
                    continue
                if record.deleted:
                    db.session.delete(obj)
                    purged += 1
                else:
                    obj.sync_status = "synced"
                    synced += 1
        return synced, purged, kept

    return run_with_retry(_op)


# =============================================================================
# Engine
# =============================================================================

class SyncEngine:
    """
    Debounced push of pending local changes. One instance per application,
    stored in app.extensions["sync_engine"] and fed by the local store change
    feed.
    """

    def __init__(
        self,
        app,
        session_provider: SessionProvider,
        client: RemoteClient,
        scheduler=None,
        debounce_seconds: float = 2.0,
        retry_interval: float = 60.0,
    ):
        self.app = app
        self.session_provider = session_provider
        self.client = client
        self.scheduler = scheduler or TimerScheduler()
        self.debounce_seconds = debounce_seconds
        self.retry_interval = retry_interval

        self._lock = threading.RLock()
        self._state = IDLE
        self._timer = None
        self._retry_timer = None
        self._rerun = False
        self._subscription = None
        self.last_result: FlushResult | None = None

    @property
    def enabled(self) -> bool:
        return self.client.enabled

    @property
    def state(self) -> str:
        return self._state

    # Change feed wiring

    def attach(self, feed) -> None:
        self.detach()
        self._subscription = feed.subscribe(None, self.on_change)

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        with self._lock:
            for timer in (self._timer, self._retry_timer):
                if timer is not None:
                    timer.cancel()
            self._timer = None
            self._retry_timer = None
            if self._state == DEBOUNCING:
                self._state = IDLE

    def on_change(self, change: ChangeSet) -> None:
        if change.signal:
            self.signal()

    # State machine

    def signal(self) -> None:
        """A local write committed; push it after the debounce window."""
        if not self.enabled:
            return
        with self._lock:
            if self._state == FLUSHING:
                self._rerun = True
                logger.debug("Sync signal queued behind running flush")
                return
            if self._state == DEBOUNCING and self._timer is not None:
                self._timer.cancel()
                logger.debug("Sync debounce window restarted")
            self._state = DEBOUNCING
            self._timer = self.scheduler.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        with self._lock:
            if self._state != DEBOUNCING:
                return
            self._timer = None
            self._state = FLUSHING
        self._run_cycle()

    def _run_cycle(self) -> FlushResult:
        try:
            result = self._within_app_context(self._flush_once)
        finally:
            with self._lock:
                self._state = IDLE
                rerun, self._rerun = self._rerun, False
        if rerun:
            self.signal()
        return result

    def flush(self) -> FlushResult:
        """
        Flush now, skipping the debounce window. Returns outcome 'busy' when a
        flush is already running; that flush will be followed by another cycle.
        """
        with self._lock:
            if self._state == FLUSHING:
                self._rerun = True
                return FlushResult(outcome="busy")
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._state = FLUSHING
        return self._run_cycle()

    def _within_app_context(self, func: Callable[[], FlushResult]) -> FlushResult:
        if has_app_context():
            return func()
        with self.app.app_context():
            return func()

    def _flush_once(self) -> FlushResult:
        if not self.enabled:
            return self._finish(FlushResult(outcome="disabled"))

        active = self.session_provider.current()
        if active is None:
            logger.debug("Sync flush skipped: no active session")
            return self._finish(FlushResult(outcome="no_session"))
        scope = active.scope

        records = collect_pending(scope)
        # Release the read transaction before the network round-trip
        db.session.rollback()
        if not records:
            logger.debug("Sync flush: nothing pending for %s/%s", scope.company_id, scope.pos_id)
            return self._finish(FlushResult(outcome="noop"))

        payload = build_payload(scope, records)
        pushed = {kind: len(items) for kind, items in payload["changes"].items()}
        try:
            self.client.push(payload)
        except SyncFailureError as exc:
            logger.warning("Sync push failed, %d record(s) stay pending: %s", len(records), exc)
            self._schedule_retry()
            return self._finish(FlushResult(outcome="failed", pushed=pushed, error=str(exc)))

        synced, purged, kept = reconcile(scope, records)
        logger.info(
            "Sync push acknowledged for %s/%s: %s (synced=%d purged=%d kept_pending=%d)",
            scope.company_id, scope.pos_id, pushed, synced, purged, kept,
        )
        return self._finish(FlushResult(
            outcome="ok",
            pushed=pushed,
            synced=synced,
            purged=purged,
            kept_pending=kept,
        ))

    def _finish(self, result: FlushResult) -> FlushResult:
        self.last_result = result
        return result

    def _schedule_retry(self) -> None:
        if self.retry_interval <= 0:
            return
        with self._lock:
            if self._retry_timer is not None:
                self._retry_timer.cancel()
            self._retry_timer = self.scheduler.call_later(self.retry_interval, self._on_retry)

    def _on_retry(self) -> None:
        with self._lock:
            self._retry_timer = None
        self.signal()

    def status(self) -> dict:
        """Snapshot for the status endpoint / CLI. Needs an app context."""
        active = self.session_provider.current()
        return {
            "enabled": self.enabled,
            "state": self._state,
            "endpoint": self.client.endpoint_url or None,
            "retry_scheduled": self._retry_timer is not None,
            "last_flush": self.last_result.to_dict() if self.last_result else None,
            "pending": pending_counts(active.scope) if active else {},
        }


def init_sync_engine(app, *, scheduler=None, transport: httpx.BaseTransport | None = None) -> SyncEngine:
    """Build the engine from app config and subscribe it to the app's change feed."""
    previous = app.extensions.get("sync_engine")
    if previous is not None:
        previous.detach()
        previous.client.close()

    client = RemoteClient(
        app.config.get("SYNC_ENDPOINT_URL", ""),
        api_key=app.config.get("SYNC_API_KEY", ""),
        timeout=app.config.get("SYNC_TIMEOUT_SECONDS", 10.0),
        transport=transport,
    )
    engine = SyncEngine(
        app,
        app.extensions["session_provider"],
        client,
        scheduler=scheduler,
        debounce_seconds=app.config.get("SYNC_DEBOUNCE_SECONDS", 2.0),
        retry_interval=app.config.get("SYNC_RETRY_INTERVAL_SECONDS", 60.0),
    )
    engine.attach(app.extensions["local_store"])
    app.extensions["sync_engine"] = engine
    return engine


def get_sync_engine() -> SyncEngine:
    return current_app.extensions["sync_engine"]
