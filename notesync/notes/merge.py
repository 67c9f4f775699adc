"""Last-write-wins merge of note versions.

Pure functions, no Flask or database access: the server handlers, the bulk
import endpoint and the device replica all call :func:`merge` with plain dicts
(full notes or heads, anything carrying ``id`` and ``modification_date``).

The whole record is the unit of versioning. Field-level or text merge is a
known limitation; a finer policy can be passed as ``policy`` without changing
callers.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 -> datetime UTC aware. Lève ValueError si illisible."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def last_write_wins(incoming: Mapping, stored: Mapping) -> bool:
    """True si ``incoming`` doit remplacer ``stored``. Égalité -> le stocké gagne."""
    return parse_timestamp(incoming["modification_date"]) > parse_timestamp(stored["modification_date"])


ConflictPolicy = Callable[[Mapping, Mapping], bool]


@dataclass
class MergeResult:
    # id -> version retenue, pour chaque id présent dans l'entrée
    winners: dict = field(default_factory=dict)
    # versions entrantes acceptées, une par id, dans l'ordre d'acceptation
    to_apply: list = field(default_factory=list)
    # versions entrantes rejetées (égales ou plus anciennes)
    discarded: list = field(default_factory=list)

    @property
    def accepted_ids(self) -> set:
        return {n["id"] for n in self.to_apply}


def merge(incoming: Iterable[Mapping], current: Mapping[str, Mapping],
          policy: ConflictPolicy = last_write_wins) -> MergeResult:
    result = MergeResult()
    accepted = {}

    for note in incoming:
        note_id = note["id"]
        # un même id peut arriver deux fois dans un lot: on compare au gagnant courant
        stored = result.winners.get(note_id, current.get(note_id))
        if stored is None or policy(note, stored):
            result.winners[note_id] = note
            accepted[note_id] = note
        else:
            result.winners[note_id] = stored
            result.discarded.append(note)

    result.to_apply = list(accepted.values())
    return result


def same_version(a: Mapping, b: Mapping) -> bool:
    """Même record complet (utilisé pour ne pas renvoyer à un client ce qu'il a déjà)."""
    return all(a.get(k) == b.get(k) for k in set(a) | set(b))
