"""Handlers du protocole de sync (queue-sync / delta-sync) côté serveur.

Toute la séquence "vérifier syncNumber -> merge -> compteur -> écrire les notes"
se déroule dans ``owner_transaction``: deux appareils du même owner ne peuvent
pas entrelacer leurs écritures. La détection d'obsolescence (syncNumber différent)
se fait ici, avant le moteur de merge, et produit une réponse du protocole, pas
une exception.
"""
import logging

from flask import current_app

from notesync.common.errors import ApiError
from notesync.notes.merge import merge, same_version
from notesync.notes.store import NoteStore, owner_transaction
from notesync.sync.schemas import (
    DELTA_OK, DELTA_REQUIRE_QUEUE, QUEUE_REQUIRE_DELTA, QUEUE_UP_TO_DATE,
)

log = logging.getLogger("notesync.sync")


def _check_batch_size(count: int) -> None:
    limit = current_app.config["MAX_NOTES_PER_REQUEST"]
    if count > limit:
        raise ApiError(
            "Too many notes in one request.",
            status_code=413,
            code="too_many_notes",
            details={"count": count, "limit": limit},
        )


def _head(note: dict) -> dict:
    return {"id": note["id"], "modification_date": note["modification_date"]}


def queue_sync(client, sync_number: int, note_heads: list) -> dict:
    """Comparaison légère sur les têtes (id, modification_date), sans corps de notes."""
    _check_batch_size(len(note_heads))

    with owner_transaction(client.username) as store:
        counter = store.sync_counter
        if sync_number != counter:
            log.info("queue_sync", extra={"client": client.label, "outcome": "stale",
                                          "client_sync_number": sync_number, "sync_number": counter})
            return {
                "type": QUEUE_REQUIRE_DELTA,
                "sync_number": counter,
                "note_heads": [],
                "fetch_ids": [],
                "push_ids": [],
            }

        current = {i: _head(n) for i, n in store.current_versions(h["id"] for h in note_heads).items()}
        result = merge(note_heads, current)

        push_ids = sorted(result.accepted_ids)
        fetch_ids = sorted({
            h["id"] for h in result.discarded
            if h["id"] not in result.accepted_ids
            and result.winners[h["id"]]["modification_date"] != h["modification_date"]
        })

        if push_ids:
            # chaque tête acceptée réserve un cran du compteur: les autres sessions
            # du même owner devront repasser par queue-sync avant leur delta-sync
            store.user.advance(len(push_ids))
        elif not fetch_ids:
            client.catch_up(counter)

        new_counter = store.sync_counter
        log.info("queue_sync", extra={"client": client.label, "outcome": "ok", "sync_number": new_counter,
                                      "push": len(push_ids), "fetch": len(fetch_ids)})
        return {
            "type": QUEUE_REQUIRE_DELTA if (push_ids or fetch_ids) else QUEUE_UP_TO_DATE,
            "sync_number": new_counter,
            "note_heads": sorted(current.values(), key=lambda h: h["id"]),
            "fetch_ids": fetch_ids,
            "push_ids": push_ids,
        }


def delta_sync(client, sync_number: int, notes: list, full: bool = False) -> dict:
    """Échange des corps complets; renvoie les notes que le client n'a pas encore."""
    _check_batch_size(len(notes))

    with owner_transaction(client.username) as store:
        counter = store.sync_counter
        if sync_number != counter:
            log.info("delta_sync", extra={"client": client.label, "outcome": "stale",
                                          "client_sync_number": sync_number, "sync_number": counter})
            return {"type": DELTA_REQUIRE_QUEUE}

        baseline = client.sync_number or 0
        # baseline 0 (premier sync) ou resync forcée -> tout, tombstones compris
        snapshot = store.all() if (full or baseline == 0) else store.changed_since(baseline)
        outgoing = {n.id: n.to_dict() for n in snapshot}

        result = merge(notes, store.current_versions(n["id"] for n in notes))
        for note in result.to_apply:
            store.upsert(note)

        # le client possède déjà ses propres versions gagnantes
        for note_id in result.accepted_ids:
            outgoing.pop(note_id, None)
        # versions rejetées: renvoyer la version stockée pour que le client converge
        for note in result.discarded:
            winner = result.winners[note["id"]]
            if note["id"] not in result.accepted_ids and not same_version(winner, note):
                outgoing[note["id"]] = winner

        new_counter = store.sync_counter
        client.catch_up(new_counter)

        log.info("delta_sync", extra={"client": client.label, "outcome": "ok", "sync_number": new_counter,
                                      "accepted": len(result.to_apply), "discarded": len(result.discarded),
                                      "returned": len(outgoing), "full": bool(full or baseline == 0)})
        return {
            "type": DELTA_OK,
            "notes": sorted(outgoing.values(), key=lambda n: n["id"]),
            "sync_number": new_counter,
        }


def fetch_notes(client, ids: list | None = None) -> list:
    """Lecture en masse par ids (toutes les notes si ids est None). Pas de garde syncNumber."""
    store = NoteStore(client.user)
    if ids is None:
        return [n.to_dict() for n in store.all()]
    _check_batch_size(len(ids))
    return [n.to_dict() for n in store.get_many(ids)]


def merge_notes(client, notes: list) -> int:
    """Import en masse: même moteur de merge, sans garde syncNumber. Retourne le nb accepté."""
    _check_batch_size(len(notes))

    with owner_transaction(client.username) as store:
        result = merge(notes, store.current_versions(n["id"] for n in notes))
        for note in result.to_apply:
            store.upsert(note)

    log.info("merge_notes", extra={"client": client.label, "accepted": len(result.to_apply),
                                   "discarded": len(result.discarded)})
    return len(result.to_apply)
