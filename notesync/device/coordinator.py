"""Device-side driver of the queue-sync / delta-sync protocol.

One cycle::

    idle -> queueing -> (up_to_date | needs_delta_sync) -> delta_syncing -> idle

Nothing is written to the replica before a delta-sync round has fully
completed, so an abandoned or failed cycle leaves the replica (and its sync
number) exactly as it was.
"""
import logging
import threading
from dataclasses import dataclass, field

from notesync.device.errors import SyncFailure
from notesync.device.events import NOTES_MERGED, SYNC_FAILED, LocalBroadcaster, SyncEvent
from notesync.device.replica import MemoryReplicaStore
from notesync.device.transport import HttpTransport
from notesync.sync.schemas import DELTA_REQUIRE_QUEUE, QUEUE_UP_TO_DATE

logger = logging.getLogger(__name__)

IDLE = "idle"
QUEUEING = "queueing"
UP_TO_DATE = "up_to_date"
NEEDS_DELTA_SYNC = "needs_delta_sync"
DELTA_SYNCING = "delta_syncing"

# issues d'un appel à sync()
MERGED = "merged"
FAILED = "failed"
SKIPPED = "skipped"
DEFERRED = "deferred"
HALTED = "halted"
GAVE_UP = "gave_up"


@dataclass
class CycleResult:
    outcome: str
    sync_number: int | None = None
    note_ids: list = field(default_factory=list)
    failure: SyncFailure | None = None


class SyncCoordinator:
    def __init__(self, transport, replica, broadcaster=None, max_rounds: int = 3):
        self.transport = transport
        self.replica = replica
        self.broadcaster = broadcaster or LocalBroadcaster()
        self.max_rounds = max_rounds

        self.state = IDLE
        self.last_failure: SyncFailure | None = None
        # unauthorized / requires_upgrade: plus aucun cycle tant que l'hôte n'a pas appelé reset()
        self.halted_by: SyncFailure | None = None

        self._cycle_lock = threading.Lock()
        self._flags_lock = threading.Lock()
        self._full_sync_required = False
        self._rerun_requested = False

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def require_full_sync(self) -> None:
        """Next cycle asks the server for every note, whatever the local baseline."""
        with self._flags_lock:
            self._full_sync_required = True

    @property
    def full_sync_required(self) -> bool:
        return self._full_sync_required

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    def add_listener(self, listener) -> None:
        self.broadcaster.subscribe(listener)

    def remove_listener(self, listener) -> None:
        self.broadcaster.unsubscribe(listener)

    def reset(self) -> None:
        """After re-login or an app upgrade."""
        self.halted_by = None
        self.last_failure = None

    def sync(self, debounced: bool = False) -> CycleResult:
        """Run one cycle now.

        At most one cycle runs at a time. While one is in flight, a debounced
        trigger is dropped; any other trigger is remembered and runs right after
        the current cycle, on the thread that owns it.
        """
        if self.halted_by is not None:
            return CycleResult(HALTED, failure=self.halted_by)

        if not self._cycle_lock.acquire(blocking=False):
            if debounced:
                return CycleResult(SKIPPED)
            # le propriétaire ne relâche _cycle_lock que sous _flags_lock
            with self._flags_lock:
                if not self._cycle_lock.acquire(blocking=False):
                    self._rerun_requested = True
                    return CycleResult(DEFERRED)

        try:
            result = self._run_cycle()
            while True:
                with self._flags_lock:
                    if self.halted_by is not None or not self._rerun_requested:
                        self.state = IDLE
                        self._cycle_lock.release()
                        return result
                    self._rerun_requested = False
                result = self._run_cycle()
        except BaseException:
            self.state = IDLE
            self._cycle_lock.release()
            raise

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _run_cycle(self) -> CycleResult:
        try:
            return self._rounds()
        except SyncFailure as failure:
            return self._fail(failure)

    def _rounds(self) -> CycleResult:
        sync_number = self.replica.get_sync_number()
        forced = self._full_sync_required
        # baseline 0: replica neuve ou effacée, le serveur doit tout renvoyer
        full = forced or sync_number == 0

        for _ in range(self.max_rounds):
            self.state = QUEUEING
            queued = self.transport.queue_sync(sync_number, self.replica.pending_heads())
            if queued["type"] == QUEUE_UP_TO_DATE and not forced:
                self.state = UP_TO_DATE
                self.last_failure = None
                return CycleResult(UP_TO_DATE, sync_number=queued["sync_number"])

            # baseline fournie par le serveur
            self.state = NEEDS_DELTA_SYNC
            sync_number = queued["sync_number"]

            self.state = DELTA_SYNCING
            sent = self.replica.pending_notes()
            delta = self.transport.delta_sync(sync_number, sent, full=full)
            if delta["type"] == DELTA_REQUIRE_QUEUE:
                # un autre appareil a avancé le compteur entre-temps: on recommence le tour
                logger.info("delta-sync bounced at sync number %s, re-queueing", sync_number)
                continue

            return self._apply(sent, delta, forced)

        logger.warning("sync gave up after %s rounds", self.max_rounds)
        return CycleResult(GAVE_UP, sync_number=self.replica.get_sync_number())

    def _apply(self, sent: list, delta: dict, forced: bool) -> CycleResult:
        self.replica.clear_pending(sent)
        changed = self.replica.apply_remote(delta["notes"])
        self.replica.set_sync_number(delta["sync_number"])
        if forced:
            with self._flags_lock:
                self._full_sync_required = False
        self.last_failure = None

        logger.info("delta-sync merged %s note(s), sync number %s", len(changed), delta["sync_number"])
        if changed:
            self.broadcaster.publish(SyncEvent(
                NOTES_MERGED,
                sync_number=delta["sync_number"],
                note_ids=tuple(changed),
                origin=self,
            ))
        return CycleResult(MERGED, sync_number=delta["sync_number"], note_ids=changed)

    def _fail(self, failure: SyncFailure) -> CycleResult:
        self.last_failure = failure
        if failure.terminal:
            self.halted_by = failure
            logger.warning("sync halted: %s", failure.message)
        else:
            logger.info("sync cycle aborted (%s): %s", failure.kind, failure.message)
        self.broadcaster.publish(SyncEvent(SYNC_FAILED, failure=failure, origin=self))
        return CycleResult(FAILED, sync_number=self.replica.get_sync_number(), failure=failure)


def build_coordinator(settings, replica=None, broadcaster=None, transport=None) -> SyncCoordinator:
    """Coordinator wired to the HTTP transport described by ``settings``."""
    return SyncCoordinator(
        HttpTransport.from_settings(settings, transport=transport),
        replica if replica is not None else MemoryReplicaStore(),
        broadcaster=broadcaster,
        max_rounds=settings.max_rounds,
    )
