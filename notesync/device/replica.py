"""Local replica of the owner's notes, as seen from one device.

The coordinator only depends on :class:`LocalReplicaStore`; how it persists
(IndexedDB, SQLite, a JSON file...) is up to the host application.
:class:`MemoryReplicaStore` is the reference implementation.
"""
import copy
import threading
from abc import ABC, abstractmethod

from notesync.notes.merge import last_write_wins, merge, parse_timestamp, same_version


def head_of(note: dict) -> dict:
    return {"id": note["id"], "modification_date": note["modification_date"]}


class LocalReplicaStore(ABC):
    @abstractmethod
    def get_sync_number(self) -> int: ...

    @abstractmethod
    def set_sync_number(self, sync_number: int) -> None: ...

    @abstractmethod
    def get_note(self, note_id: str) -> dict | None: ...

    @abstractmethod
    def all_notes(self) -> list: ...

    @abstractmethod
    def save_note(self, note: dict) -> None:
        """Local edit: store the note and queue it for the next sync."""

    @abstractmethod
    def pending_notes(self) -> list: ...

    @abstractmethod
    def clear_pending(self, sent: list) -> None:
        """Unqueue notes the server has answered for, unless edited again since."""

    @abstractmethod
    def apply_remote(self, notes: list) -> list:
        """Merge server versions in; returns the ids whose local copy changed."""

    def pending_heads(self) -> list:
        return [head_of(n) for n in self.pending_notes()]


class MemoryReplicaStore(LocalReplicaStore):
    def __init__(self, notes=None, sync_number: int = 0):
        self._lock = threading.RLock()
        self._notes = {n["id"]: dict(n) for n in (notes or [])}
        self._pending = {}
        self._sync_number = sync_number

    def get_sync_number(self) -> int:
        return self._sync_number

    def set_sync_number(self, sync_number: int) -> None:
        with self._lock:
            self._sync_number = sync_number

    def get_note(self, note_id):
        with self._lock:
            note = self._notes.get(note_id)
            return dict(note) if note is not None else None

    def all_notes(self):
        with self._lock:
            return [dict(n) for n in sorted(self._notes.values(), key=lambda n: n["id"])]

    def save_note(self, note):
        with self._lock:
            self._notes[note["id"]] = dict(note)
            self._pending[note["id"]] = note["modification_date"]

    def pending_notes(self):
        with self._lock:
            return [dict(self._notes[i]) for i in sorted(self._pending)]

    def clear_pending(self, sent):
        with self._lock:
            for note in sent:
                if self._pending.get(note["id"]) == note["modification_date"]:
                    del self._pending[note["id"]]

    def _confirmed_policy(self, incoming, stored):
        # Le serveur fait autorité sur les notes sans édition locale en attente:
        # à date égale sa version remplace la nôtre (le "stocké" côté serveur a gagné).
        if last_write_wins(incoming, stored):
            return True
        return (stored["id"] not in self._pending
                and parse_timestamp(incoming["modification_date"]) == parse_timestamp(stored["modification_date"]))

    def apply_remote(self, notes):
        with self._lock:
            result = merge(copy.deepcopy(notes), self._notes, policy=self._confirmed_policy)
            changed = []
            for note in result.to_apply:
                previous = self._notes.get(note["id"])
                self._notes[note["id"]] = note
                # la version serveur est plus récente que l'édition locale en attente
                self._pending.pop(note["id"], None)
                if previous is None or not same_version(previous, note):
                    changed.append(note["id"])
            return sorted(changed)
