from flask import Blueprint, request, jsonify, g
from notesync.common.authz import client_required, protocol_required
from notesync.common.errors import ApiError
from notesync.sync import service
from notesync.sync.schemas import (
    QueueSyncIn, QueueSyncOut, DeltaSyncIn, DeltaSyncOut, FetchNotesIn, MergeNotesIn,
)
from notesync.notes.schemas import NoteSchema

bp = Blueprint("sync", __name__)

queue_in = QueueSyncIn()
queue_out = QueueSyncOut()
delta_in = DeltaSyncIn()
delta_out = DeltaSyncOut()
fetch_in = FetchNotesIn()
merge_in = MergeNotesIn()
note_out_many = NoteSchema(many=True)

# Ordre des décorateurs: version de protocole d'abord, puis authentification.
# Aucun des deux ne touche aux notes.

@bp.post("/queue")
@protocol_required
@client_required
def queue_sync():
    payload = request.get_json(silent=True) or {}
    data = queue_in.load(payload)
    res = service.queue_sync(g.client, data["sync_number"], data["note_heads"])
    return jsonify(queue_out.dump(res)), 200

@bp.post("/delta")
@protocol_required
@client_required
def delta_sync():
    payload = request.get_json(silent=True) or {}
    data = delta_in.load(payload)
    res = service.delta_sync(g.client, data["sync_number"], data["notes"], full=data["full"])
    return jsonify(delta_out.dump(res)), 200

@bp.post("/notes")
@protocol_required
@client_required
def fetch_notes():
    payload = request.get_json(silent=True) or {}
    data = fetch_in.load(payload)
    notes = service.fetch_notes(g.client, data["ids"])
    resp = jsonify(note_out_many.dump(notes))
    resp.headers["Cache-Control"] = "no-cache"
    return resp, 200

@bp.post("/merge")
@protocol_required
@client_required
def merge_notes():
    payload = request.get_json(silent=True) or {}
    data = merge_in.load(payload)
    accepted = service.merge_notes(g.client, data["notes"])
    return jsonify({"ok": True, "accepted": accepted}), 200

# Anciennes générations du protocole: le client doit se mettre à jour
@bp.post("/partial")
@bp.post("/full")
def retired_endpoint():
    raise ApiError("App requires update", 400, "app_requires_update")
