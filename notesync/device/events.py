"""Publish/subscribe seam between the coordinator and whatever tells other
tabs or devices that something happened (broadcast channel, push message...).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

NOTES_MERGED = "notes_merged"
SYNC_FAILED = "sync_failed"


@dataclass(frozen=True)
class SyncEvent:
    kind: str
    sync_number: int | None = None
    note_ids: tuple = ()
    failure: object = None
    # émetteur, pour ne pas se renvoyer ses propres événements
    origin: object = None
    details: dict = field(default_factory=dict)


class Broadcaster(ABC):
    @abstractmethod
    def subscribe(self, listener) -> None: ...

    @abstractmethod
    def unsubscribe(self, listener) -> None: ...

    @abstractmethod
    def publish(self, event: SyncEvent, except_=()) -> None: ...


class LocalBroadcaster(Broadcaster):
    """In-process backend: listeners are plain callables taking a SyncEvent."""

    def __init__(self):
        self._listeners = []

    def subscribe(self, listener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event, except_=()):
        for listener in list(self._listeners):
            if listener in except_:
                continue
            try:
                listener(event)
            except Exception:
                # un listener cassé ne doit pas interrompre la sync
                logger.exception("sync listener failed on %s", event.kind)
