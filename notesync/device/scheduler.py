"""When to run sync cycles: periodic timer, explicit requests, debounced edits.

The clock is injected so tests can drive time by hand with :meth:`SyncScheduler.tick`;
:meth:`SyncScheduler.start` runs the same ticks on a background thread.
"""
import logging
import threading
import time

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, coordinator, interval: float = 5.0, debounce: float = 0.5, clock=time.monotonic):
        self.coordinator = coordinator
        self.interval = interval
        self.debounce = debounce
        self._clock = clock

        self._lock = threading.Lock()
        # premier cycle dès le démarrage
        self._next_periodic = clock()
        self._debounce_deadline = None
        self._immediate = False

        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread = None

    @classmethod
    def from_settings(cls, coordinator, settings, clock=time.monotonic) -> "SyncScheduler":
        return cls(coordinator, interval=settings.interval, debounce=settings.debounce, clock=clock)

    def request(self, debounced: bool = False, full: bool = False) -> None:
        """Ask for a cycle. Debounced requests keep pushing the deadline back,
        so a burst of edits ends up in a single cycle."""
        if full:
            self.coordinator.require_full_sync()
        with self._lock:
            if debounced:
                self._debounce_deadline = self._clock() + self.debounce
            else:
                self._immediate = True
        self._wake.set()

    def seconds_until_due(self) -> float:
        with self._lock:
            if self._immediate:
                return 0.0
            due = self._next_periodic
            if self._debounce_deadline is not None:
                due = min(due, self._debounce_deadline)
        return max(0.0, due - self._clock())

    def tick(self):
        """Run a cycle if one is due; returns its CycleResult or None."""
        now = self._clock()
        with self._lock:
            debounce_due = self._debounce_deadline is not None and now >= self._debounce_deadline
            periodic_due = now >= self._next_periodic
            if not (self._immediate or debounce_due or periodic_due):
                return None
            # seul le déclencheur "debounced" peut être abandonné si un cycle tourne
            debounced_only = debounce_due and not (self._immediate or periodic_due)
            self._immediate = False
            if debounce_due:
                self._debounce_deadline = None
            self._next_periodic = now + self.interval

        return self.coordinator.sync(debounced=debounced_only)

    # ------------------------------------------------------------------
    # Background thread
    # ------------------------------------------------------------------

    def _loop(self):
        while not self._stop.is_set():
            self.tick()
            self._wake.wait(self.seconds_until_due())
            self._wake.clear()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="notesync-scheduler", daemon=True)
        self._thread.start()
        logger.info("sync scheduler started (interval=%ss, debounce=%ss)", self.interval, self.debounce)

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling. A cycle in flight finishes its current request; nothing
        half-applied is left behind since the replica is only written at the end."""
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
