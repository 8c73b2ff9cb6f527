"""Network lifecycle events: recorded in ``event_wal``, then handed to plugins.

Every ``post_network_*`` event gets a WAL row keyed by the network it
concerns before any plugin sees it. A plugin that raises leaves the row
``failed`` and it is retried by :meth:`EventBus.drain` (the workspace
drains on close) until ``max_retries`` attempts have been made, after
which the row is parked as ``dead_letter``. A payload that does not fit
the hook's arguments can never succeed and is parked immediately.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import inspect
import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, select, update

from sharectl.infrastructure.database.schema import event_wal
from sharectl.plugins.hookspecs import SharectlHookSpec
from sharectl.services._helpers import now_iso

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine

    from sharectl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"
DEAD_LETTER = "dead_letter"
RETRYABLE = (PENDING, FAILED)

# Hook name -> argument names, read from the hook specifications.
LIFECYCLE_HOOKS: dict[str, tuple[str, ...]] = {
    name: tuple(p for p in inspect.signature(fn).parameters if p != "self")
    for name, fn in inspect.getmembers(SharectlHookSpec, inspect.isfunction)
    if name.startswith("post_network_")
}


@dataclass(frozen=True)
class LifecycleEvent:
    """One ``event_wal`` row."""

    id: int
    hook_name: str
    network_id: str | None
    payload: dict[str, Any]
    status: str
    retries: int
    error: str | None

    @classmethod
    def from_row(cls, row: Any) -> LifecycleEvent:
        return cls(
            id=row.id,
            hook_name=row.hook_name,
            network_id=row.network_id,
            payload=json.loads(row.payload),
            status=row.status,
            retries=row.retries or 0,
            error=row.error,
        )


class EventBus:
    """Persist-then-dispatch for network lifecycle hooks.

    Parameters:
        engine: SQLAlchemy engine with the ``event_wal`` table.
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Run hooks inline instead of on the worker pool (``--sync``).
        max_retries: Failed attempts before an event becomes ``dead_letter``.
    """

    def __init__(
        self,
        engine: Engine,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_retries: int = 3,
        max_workers: int = 2,
    ) -> None:
        self._engine = engine
        self._pm = plugin_manager
        self._max_retries = max_retries
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers)
        )
        self._futures: list[Future[None]] = []

    def dispatch(
        self,
        hook_name: str,
        payload: dict[str, Any],
        *,
        network_id: str | None = None,
    ) -> int:
        """Record a lifecycle event, then run its hook. Returns the WAL row id.

        *network_id* defaults to the payload's ``network_id``.

        Raises:
            ValueError: If *hook_name* is not a network lifecycle hook.
        """
        if hook_name not in LIFECYCLE_HOOKS:
            msg = f"Not a network lifecycle hook: {hook_name}"
            raise ValueError(msg)
        if network_id is None:
            network_id = payload.get("network_id")

        with self._engine.begin() as conn:
            event_id = conn.execute(
                insert(event_wal).values(
                    hook_name=hook_name,
                    payload=json.dumps(payload),
                    status=PENDING,
                    retries=0,
                    network_id=network_id,
                    created=now_iso(),
                )
            ).lastrowid
        assert event_id is not None

        if self._executor is None:
            self._run(event_id, hook_name, payload)
        else:
            self._futures.append(self._executor.submit(self._run, event_id, hook_name, payload))
        return event_id

    def drain(self, network_id: str | None = None) -> list[LifecycleEvent]:
        """Retry pending and failed events inline, optionally for one network.

        Returns the retried events as they stand afterwards.
        """
        self._wait_futures()
        query = select(event_wal.c.id).where(event_wal.c.status.in_(RETRYABLE))
        if network_id is not None:
            query = query.where(event_wal.c.network_id == network_id)
        with self._engine.connect() as conn:
            ids = list(conn.execute(query.order_by(event_wal.c.id)).scalars())

        retried: list[LifecycleEvent] = []
        for event_id in ids:
            event = self.get(event_id)
            if event is None:
                continue
            self._run(event.id, event.hook_name, event.payload)
            retried.append(self.get(event_id) or event)
        if retried:
            logger.debug("Drained %d lifecycle events", len(retried))
        return retried

    def get(self, event_id: int) -> LifecycleEvent | None:
        with self._engine.connect() as conn:
            row = conn.execute(select(event_wal).where(event_wal.c.id == event_id)).first()
        return LifecycleEvent.from_row(row) if row is not None else None

    def history(self, network_id: str) -> list[LifecycleEvent]:
        """Every recorded event for *network_id*, oldest first."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(event_wal).where(event_wal.c.network_id == network_id).order_by(event_wal.c.id)
            ).fetchall()
        return [LifecycleEvent.from_row(row) for row in rows]

    def dead_letters(self) -> list[LifecycleEvent]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(event_wal).where(event_wal.c.status == DEAD_LETTER).order_by(event_wal.c.id)
            ).fetchall()
        return [LifecycleEvent.from_row(row) for row in rows]

    def pending_count(self) -> int:
        with self._engine.connect() as conn:
            return conn.execute(
                select(func.count()).select_from(event_wal).where(event_wal.c.status.in_(RETRYABLE))
            ).scalar_one()

    def shutdown(self) -> None:
        """Wait for in-flight hooks and stop the worker pool."""
        self._wait_futures()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(self, event_id: int, hook_name: str, payload: dict[str, Any]) -> None:
        expected = set(LIFECYCLE_HOOKS[hook_name])
        if set(payload) != expected:
            self._settle(
                event_id,
                DEAD_LETTER,
                f"Payload keys {sorted(payload)} do not match {hook_name}{sorted(expected)}",
            )
            return
        try:
            getattr(self._pm.hook, hook_name)(**payload)
        except Exception as exc:
            logger.debug("Hook %s failed: %s", hook_name, exc)
            self._settle(event_id, FAILED, str(exc))
        else:
            self._settle(event_id, COMPLETED, None)

    def _settle(self, event_id: int, status: str, error: str | None) -> None:
        with self._engine.begin() as conn:
            retries = _retries(conn, event_id)
            if status == FAILED:
                retries += 1
                if retries >= self._max_retries:
                    status = DEAD_LETTER
            if status == DEAD_LETTER:
                logger.warning("Lifecycle event %d parked as dead letter: %s", event_id, error)
            conn.execute(
                update(event_wal)
                .where(event_wal.c.id == event_id)
                .values(
                    status=status,
                    error=error,
                    retries=retries,
                    completed=None if status == FAILED else now_iso(),
                )
            )

    def _wait_futures(self) -> None:
        for future in self._futures:
            try:
                future.result(timeout=30)
            except Exception:
                logger.debug("Lifecycle hook worker raised", exc_info=True)
        self._futures.clear()


def _retries(conn: Connection, event_id: int) -> int:
    return conn.execute(select(event_wal.c.retries).where(event_wal.c.id == event_id)).scalar_one() or 0
