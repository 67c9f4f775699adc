# tests/test_sync.py
import threading

from notesync.device.transport import PROTOCOL_HEADER, PROTOCOL_VERSION
from notesync.extensions import db
from notesync.notes.models import Note
from notesync.users.models import User

T1 = "2024-03-01T09:00:00.000Z"
T15 = "2024-03-01T09:30:00.000Z"
T2 = "2024-03-01T10:00:00.000Z"
T3 = "2024-03-01T11:00:00.000Z"

def _note(id="a", when=T1, text="hi", **flags):
    note = {"id": id, "text": text, "modification_date": when,
            "not_archived": 1, "pinned": 0, "not_deleted": 1}
    note.update(flags)
    return note

def _delta(api, token, sync_number, notes=(), full=False):
    r = api("/api/v1/sync/delta", token, {"syncNumber": sync_number, "notes": list(notes), "full": full})
    assert r.status_code == 200, r.get_json()
    return r.get_json()

def _queue(api, token, sync_number, heads=()):
    r = api("/api/v1/sync/queue", token, {"syncNumber": sync_number, "noteHeads": list(heads)})
    assert r.status_code == 200, r.get_json()
    return r.get_json()

def _counter(app, username="alice"):
    with app.app_context():
        return db.session.get(User, username).sync_counter

def _stored(app, note_id, username="alice"):
    with app.app_context():
        note = db.session.get(Note, (username, note_id))
        return note.to_dict() if note else None


def test_first_submission_returns_no_notes(app, api, issue_token):
    token = issue_token()
    res = _delta(api, token, 0, [_note(text="hi")])
    assert res == {"type": "ok", "notes": [], "syncNumber": 1}
    assert _stored(app, "a")["text"] == "hi"

def test_stale_client_is_bounced_then_converges(app, api, issue_token):
    tok_a, tok_b = issue_token(), issue_token()

    # A crée la note; B récupère tout -> les deux clients sont à 1
    assert _delta(api, tok_a, 0, [_note(when=T1, text="v1")])["syncNumber"] == 1
    res_b = _delta(api, tok_b, 1)
    assert [n["text"] for n in res_b["notes"]] == ["v1"]
    assert res_b["syncNumber"] == 1

    # A édite -> compteur 2
    res_a = _delta(api, tok_a, 1, [_note(when=T2, text="v2")])
    assert res_a == {"type": "ok", "notes": [], "syncNumber": 2}

    # B pousse une édition plus ancienne avec un syncNumber périmé
    stale = _note(when=T15, text="b-edit")
    assert _delta(api, tok_b, 1, [stale]) == {"type": "require_queue_sync"}
    assert _stored(app, "a")["text"] == "v2"
    assert _counter(app) == 2

    queued = _queue(api, tok_b, 1, [{"id": "a", "modification_date": T15}])
    assert queued["type"] == "require_delta_sync"
    assert queued["syncNumber"] == 2

    res = _delta(api, tok_b, queued["syncNumber"], [stale])
    assert res["type"] == "ok"
    assert res["syncNumber"] == 2
    assert res["notes"] == [_note(when=T2, text="v2")]
    assert _stored(app, "a")["text"] == "v2"

def test_resubmitting_same_version_does_not_move_counter(app, api, issue_token):
    token = issue_token()
    note = _note()
    assert _delta(api, token, 0, [note])["syncNumber"] == 1
    again = _delta(api, token, 1, [note])
    assert again == {"type": "ok", "notes": [], "syncNumber": 1}
    assert _counter(app) == 1

def test_counter_advances_once_per_accepted_note(app, api, issue_token):
    token = issue_token()
    res = _delta(api, token, 0, [_note("a"), _note("b"), _note("c")])
    assert res["syncNumber"] == 3
    res = _delta(api, token, 3, [_note("a", when=T2), _note("b")])
    assert res["syncNumber"] == 4

def test_counter_never_decreases(app, api, issue_token):
    token = issue_token()
    seen = [_counter(app)]
    sync_number = 0
    for when, text in ((T2, "x"), (T1, "older"), (T2, "x"), (T3, "y")):
        sync_number = _delta(api, token, sync_number, [_note(when=when, text=text)])["syncNumber"]
        seen.append(_counter(app))
    assert seen == sorted(seen)
    assert seen[-1] == 2

def test_tie_keeps_stored_and_sends_it_back(app, api, issue_token):
    tok_a, tok_b = issue_token(), issue_token()
    _delta(api, tok_a, 0, [_note(when=T1, text="from-a")])
    _delta(api, tok_b, 1)

    res = _delta(api, tok_b, 1, [_note(when=T1, text="from-b")])
    assert res["syncNumber"] == 1
    assert res["notes"] == [_note(when=T1, text="from-a")]
    assert _stored(app, "a")["text"] == "from-a"

def test_incremental_returns_only_changes_since_baseline(app, api, issue_token):
    tok_a, tok_b = issue_token(), issue_token()
    _delta(api, tok_a, 0, [_note("a"), _note("b")])
    assert len(_delta(api, tok_b, 2)["notes"]) == 2

    _delta(api, tok_a, 2, [_note("b", when=T2, text="b2")])
    res = _delta(api, tok_b, 3)
    assert [n["id"] for n in res["notes"]] == ["b"]

    # plus rien à recevoir
    assert _delta(api, tok_b, 3)["notes"] == []

def test_first_sync_includes_tombstones(app, api, issue_token):
    tok_a = issue_token()
    _delta(api, tok_a, 0, [_note("a"), _note("gone", when=T2, text=None, not_deleted=0)])

    fresh = issue_token()
    res = _delta(api, fresh, 2)
    by_id = {n["id"]: n for n in res["notes"]}
    assert by_id["gone"]["not_deleted"] == 0
    assert by_id["gone"]["text"] is None

def test_forced_full_sync_returns_everything(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a"), _note("b")])
    assert _delta(api, token, 2)["notes"] == []
    res = _delta(api, token, 2, full=True)
    assert [n["id"] for n in res["notes"]] == ["a", "b"]

def test_staleness_gate_mutates_nothing(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a")])
    res = _delta(api, token, 0, [_note("a", when=T3, text="late"), _note("z")])
    assert res == {"type": "require_queue_sync"}
    assert _stored(app, "a")["text"] == "hi"
    assert _stored(app, "z") is None
    assert _counter(app) == 1

def test_queue_sync_up_to_date_is_cheap(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a")])
    res = _queue(api, token, 1, [{"id": "a", "modification_date": T1}])
    assert res["type"] == "up_to_date"
    assert res["syncNumber"] == 1
    assert res["pushIds"] == [] and res["fetchIds"] == []
    assert _counter(app) == 1

def test_queue_sync_reports_push_and_fetch(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a", when=T2), _note("b", when=T1)])

    heads = [
        {"id": "a", "modification_date": T1},   # serveur plus récent -> fetch
        {"id": "b", "modification_date": T2},   # client plus récent -> push
        {"id": "new", "modification_date": T1}, # inconnu du serveur -> push
    ]
    res = _queue(api, token, 2, heads)
    assert res["type"] == "require_delta_sync"
    assert res["fetchIds"] == ["a"]
    assert res["pushIds"] == ["b", "new"]
    assert {h["id"] for h in res["noteHeads"]} == {"a", "b"}
    # une réservation par tête acceptée
    assert res["syncNumber"] == 4
    assert _counter(app) == 4

    out = _delta(api, token, 4, [_note("b", when=T2, text="b2"), _note("new")])
    assert out["syncNumber"] == 6

def test_queue_sync_stale_does_not_merge(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a")])
    res = _queue(api, token, 0, [{"id": "x", "modification_date": T1}])
    assert res == {"type": "require_delta_sync", "syncNumber": 1, "noteHeads": [], "fetchIds": [], "pushIds": []}
    assert _counter(app) == 1

def test_notes_are_isolated_per_owner(app, api, issue_token):
    alice, bob = issue_token("alice"), issue_token("bob")
    _delta(api, alice, 0, [_note("a", text="alice's")])
    res = _delta(api, bob, 0, [_note("a", text="bob's")])
    assert res == {"type": "ok", "notes": [], "syncNumber": 1}
    assert _stored(app, "a", "alice")["text"] == "alice's"
    assert _stored(app, "a", "bob")["text"] == "bob's"

def test_fetch_notes_by_id_and_all(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a"), _note("b"), _note("c")])

    r = api("/api/v1/sync/notes", token, {"ids": ["c", "a", "missing"]})
    assert r.status_code == 200
    assert r.headers["Cache-Control"] == "no-cache"
    assert [n["id"] for n in r.get_json()] == ["a", "c"]

    r = api("/api/v1/sync/notes", token, {})
    assert len(r.get_json()) == 3

def test_bulk_merge_skips_gate_but_keeps_merge_rules(app, api, issue_token):
    token = issue_token()
    _delta(api, token, 0, [_note("a", when=T2, text="kept")])

    r = api("/api/v1/sync/merge", token, {"notes": [_note("a", when=T1, text="import"), _note("b")]})
    assert r.status_code == 200
    assert r.get_json() == {"ok": True, "accepted": 1}
    assert _stored(app, "a")["text"] == "kept"
    assert _stored(app, "b") is not None
    assert _counter(app) == 2

    # un client à jour voit l'import comme un changement normal
    other = issue_token()
    assert len(_delta(api, other, 2)["notes"]) == 2

def test_malformed_payload_is_rejected_without_mutation(app, api, issue_token):
    token = issue_token()
    bad = _note()
    del bad["modification_date"]
    r = api("/api/v1/sync/delta", token, {"syncNumber": 0, "notes": [_note("ok"), bad]})
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "validation_error"
    assert _stored(app, "ok") is None
    assert _counter(app) == 0

def test_invalid_flag_and_timestamp_are_rejected(app, api, issue_token):
    token = issue_token()
    for bad in (_note(pinned=2), _note(when="not a date"), _note(not_deleted="1")):
        r = api("/api/v1/sync/delta", token, {"syncNumber": 0, "notes": [bad]})
        assert r.status_code == 400
    r = api("/api/v1/sync/queue", token, {"noteHeads": []})
    assert r.status_code == 400

def test_too_many_notes_is_rejected(app, api, issue_token):
    token = issue_token()
    app.config["MAX_NOTES_PER_REQUEST"] = 2
    try:
        r = api("/api/v1/sync/delta", token, {"syncNumber": 0, "notes": [_note("a"), _note("b"), _note("c")]})
    finally:
        app.config["MAX_NOTES_PER_REQUEST"] = 5000
    assert r.status_code == 413
    assert r.get_json()["error"]["code"] == "too_many_notes"
    assert _counter(app) == 0

def test_concurrent_deltas_for_one_owner_are_serialized(app, issue_token, monkeypatch):
    from notesync.notes import store
    from notesync.sync import service

    tok_a, tok_b = issue_token(), issue_token()
    results, seen = {}, {}
    first_done, second_waiting = threading.Event(), threading.Event()
    real_lock_for, real_merge = store._lock_for, service.merge

    def post(name, token, note):
        r = app.test_client().post(
            "/api/v1/sync/delta",
            json={"syncNumber": 0, "notes": [note]},
            headers={"Authorization": f"Bearer {token}", PROTOCOL_HEADER: str(PROTOCOL_VERSION)},
        )
        results[name] = r.get_json()
        if name == "first":
            first_done.set()

    second = threading.Thread(target=post, args=("second", tok_b, _note("b")), name="second")

    class SecondInLine:
        def __init__(self, lock):
            self._lock = lock

        def __enter__(self):
            seen["held_by_first"] = self._lock.locked()
            second_waiting.set()
            # même connexion SQLite partagée: on attend la fin de la requête du premier
            first_done.wait(5.0)
            self._lock.acquire()

        def __exit__(self, *exc):
            self._lock.release()

    def lock_for(username):
        lock = real_lock_for(username)
        if threading.current_thread() is second:
            return SecondInLine(lock)
        return lock

    def merge_while_second_arrives(*args, **kwargs):
        # le premier est dans la section critique: le second arrive avec le même syncNumber
        if threading.current_thread().name == "first" and not second.is_alive() and "second" not in results:
            second.start()
            assert second_waiting.wait(5.0)
        return real_merge(*args, **kwargs)

    monkeypatch.setattr(store, "_lock_for", lock_for)
    monkeypatch.setattr(service, "merge", merge_while_second_arrives)

    first = threading.Thread(target=post, args=("first", tok_a, _note("a")), name="first")
    first.start()
    first.join(10.0)
    second.join(10.0)

    assert seen["held_by_first"] is True
    assert results["first"]["type"] == "ok"
    assert results["second"] == {"type": "require_queue_sync"}
    assert _counter(app) == 1
    assert _stored(app, "a") is not None
    assert _stored(app, "b") is None

def test_owner_locks_are_shared_then_released():
    import gc
    from notesync.notes import store

    lock = store._lock_for("dave")
    assert store._lock_for("dave") is lock
    assert store._lock_for("erin") is not lock
    del lock
    gc.collect()
    assert "dave" not in store._owner_locks
