"""Sequence export -> transform -> placement -> clip -> render hand-off as one cycle.

One cycle runs at a time on a worker thread. Per cycle:

    IDLE -> EXPORTING -> TRANSFORMED -> PLACED -> IDLE
    IDLE -> ... -> FAILED -> IDLE          (any stage error)

A request made while a cycle is in flight is either queued (FIFO, depth 1;
a newer request supersedes the queued one) or rejected, depending on the
queue policy. Every request gets a monotonically increasing cycle id; a
cycle whose id is no longer the newest when it reaches the scene discards
its results instead of applying them. A failed cycle leaves the current
asset and clipping untouched and surfaces exactly one error on its future.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from errors import McAtlasError, SyncRejected, SyncSuperseded
from export_service import ExportService
from models import ClippingLoop, PlacedAsset
from payload_reader import read_payload
from placement import PlacementResolver
from scene import SceneHandle

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    EXPORTING = "exporting"
    TRANSFORMED = "transformed"
    PLACED = "placed"
    FAILED = "failed"


@dataclass
class SyncOutcome:
    cycle_id: int
    asset: PlacedAsset
    clipping: List[ClippingLoop] = field(default_factory=list)


class PayloadSource:
    """Where sync payloads come from (HTTP bridge or in-process export)."""

    def fetch_payload(self) -> dict:
        raise NotImplementedError


class LocalPayloadSource(PayloadSource):
    """In-process transport: calls the CAD-side export service directly."""

    def __init__(self, service: ExportService):
        self.service = service

    def fetch_payload(self) -> dict:
        return self.service.handle_export()


class SyncOrchestrator:
    def __init__(
        self,
        source: PayloadSource,
        resolver: PlacementResolver,
        scene: SceneHandle,
        queue_policy: str = "queue",
        on_state: Optional[Callable[[int, SyncState], None]] = None,
    ):
        if queue_policy not in ("queue", "reject"):
            raise ValueError(f"Unknown queue policy {queue_policy!r}")
        self.source = source
        self.resolver = resolver
        self.scene = scene
        self.queue_policy = queue_policy
        self.on_state = on_state
        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._last_id = 0
        self._in_flight = False
        self._pending: Optional[Tuple[int, Future]] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def latest_cycle_id(self) -> int:
        return self._last_id

    def _set_state(self, cycle_id: int, state: SyncState) -> None:
        self._state = state
        logger.info("Sync %d: %s", cycle_id, state.value)
        if self.on_state is not None:
            self.on_state(cycle_id, state)

    # -- requests -----------------------------------------------------------

    def request_sync(self) -> "Future[SyncOutcome]":
        """Start (or queue) a sync cycle; the future resolves to its SyncOutcome."""
        future: Future = Future()
        with self._lock:
            if self._in_flight and self.queue_policy == "reject":
                future.set_exception(SyncRejected("A sync is already in progress"))
                return future
            self._last_id += 1
            cycle_id = self._last_id
            if not self._in_flight:
                self._in_flight = True
                self._worker = threading.Thread(
                    target=self._drain, args=(cycle_id, future),
                    name="mcatlas-sync", daemon=True,
                )
                self._worker.start()
                return future
            if self._pending is not None:
                old_id, old_future = self._pending
                logger.info("Sync %d superseded by %d before it started", old_id, cycle_id)
                old_future.set_exception(SyncSuperseded(f"Sync {old_id} superseded by {cycle_id}"))
            self._pending = (cycle_id, future)
        return future

    def sync(self, timeout: Optional[float] = None) -> SyncOutcome:
        """Blocking sync; raises the cycle's terminal error."""
        return self.request_sync().result(timeout)

    def _drain(self, cycle_id: int, future: Future) -> None:
        while True:
            self._run(cycle_id, future)
            with self._lock:
                if self._pending is None:
                    self._in_flight = False
                    return
                cycle_id, future = self._pending
                self._pending = None

    # -- one cycle ----------------------------------------------------------

    def _run(self, cycle_id: int, future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            outcome = self._cycle(cycle_id)
        except SyncSuperseded as exc:
            logger.info("%s", exc)
            self._set_state(cycle_id, SyncState.IDLE)
            future.set_exception(exc)
            return
        except Exception as exc:
            if not isinstance(exc, McAtlasError):
                wrapped = McAtlasError(f"Sync failed: {exc}")
                wrapped.__cause__ = exc
                exc = wrapped
            self._set_state(cycle_id, SyncState.FAILED)
            logger.error("Sync %d failed: %s", cycle_id, exc)
            self._set_state(cycle_id, SyncState.IDLE)
            future.set_exception(exc)
            return
        self._set_state(cycle_id, SyncState.IDLE)
        future.set_result(outcome)

    def _cycle(self, cycle_id: int) -> SyncOutcome:
        self._set_state(cycle_id, SyncState.EXPORTING)
        data = self.source.fetch_payload()

        payload = read_payload(data)
        payload.cycle_id = cycle_id
        self._set_state(cycle_id, SyncState.TRANSFORMED)

        placed = self.resolver.resolve(payload)

        with self._lock:
            if cycle_id != self._last_id:
                raise SyncSuperseded(
                    f"Sync {cycle_id} discarded; sync {self._last_id} was requested"
                )
            self.scene.apply(placed, payload.clipping_polygons)
        self._set_state(cycle_id, SyncState.PLACED)
        return SyncOutcome(cycle_id=cycle_id, asset=placed, clipping=list(payload.clipping_polygons))
