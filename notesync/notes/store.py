import threading
import weakref
from contextlib import contextmanager

from notesync.extensions import db
from notesync.notes.models import Note
from notesync.users.models import User

# Verrou process-local par owner (SQLite ignore SELECT ... FOR UPDATE).
# Références faibles: un verrou disparaît quand plus aucune requête ne le tient.
_owner_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
_owner_locks_guard = threading.Lock()


def _lock_for(username: str) -> threading.Lock:
    with _owner_locks_guard:
        lock = _owner_locks.get(username)
        if lock is None:
            lock = _owner_locks[username] = threading.Lock()
        return lock


class NoteStore:
    """Notes d'un seul owner + son compteur de sync. Ne commit jamais lui-même."""

    def __init__(self, user: User):
        self.user = user

    @property
    def username(self) -> str:
        return self.user.username

    @property
    def sync_counter(self) -> int:
        return self.user.sync_counter or 0

    def _query(self):
        return Note.query.filter(Note.username == self.username)

    def get(self, note_id: str) -> Note | None:
        return db.session.get(Note, (self.username, note_id))

    def get_many(self, ids) -> list[Note]:
        ids = list(ids)
        if not ids:
            return []
        return self._query().filter(Note.id.in_(ids)).order_by(Note.id).all()

    def all(self) -> list[Note]:
        # tombstones inclus
        return self._query().order_by(Note.id).all()

    def changed_since(self, sync_number: int) -> list[Note]:
        return self._query().filter(Note.sync_number > sync_number).order_by(Note.sync_number, Note.id).all()

    def current_versions(self, ids) -> dict:
        return {n.id: n.to_dict() for n in self.get_many(ids)}

    def upsert(self, payload: dict) -> Note:
        """Écrit la version gagnante et avance le compteur d'un cran."""
        sync_number = self.user.advance()
        note = self.get(payload["id"])
        if note is None:
            note = Note(username=self.username, id=payload["id"])
            db.session.add(note)
        note.assign(payload, sync_number)
        return note


@contextmanager
def owner_transaction(username: str):
    """
    Section critique par owner: check syncNumber -> merge -> compteur -> notes.
    Commit à la sortie, rollback si exception.
    """
    with _lock_for(username):
        user = (
            db.session.query(User)
            .filter(User.username == username)
            .populate_existing()
            .with_for_update()
            .one()
        )
        try:
            yield NoteStore(user)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
