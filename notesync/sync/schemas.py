from marshmallow import Schema, fields, validate

from notesync.notes.schemas import NoteHeadSchema, NoteSchema

QUEUE_UP_TO_DATE = "up_to_date"
QUEUE_REQUIRE_DELTA = "require_delta_sync"
DELTA_OK = "ok"
DELTA_REQUIRE_QUEUE = "require_queue_sync"

_sync_number = dict(required=True, strict=True, validate=validate.Range(min=0))


class QueueSyncIn(Schema):
    sync_number = fields.Integer(data_key="syncNumber", **_sync_number)
    note_heads = fields.List(fields.Nested(NoteHeadSchema), data_key="noteHeads", load_default=list)


class QueueSyncOut(Schema):
    type = fields.String(required=True, validate=validate.OneOf([QUEUE_UP_TO_DATE, QUEUE_REQUIRE_DELTA]))
    sync_number = fields.Integer(data_key="syncNumber", required=True)
    note_heads = fields.List(fields.Nested(NoteHeadSchema), data_key="noteHeads")
    # ids dont le serveur a une version plus récente que la tête envoyée
    fetch_ids = fields.List(fields.String(), data_key="fetchIds")
    # ids dont le serveur attend le corps complet au prochain delta-sync
    push_ids = fields.List(fields.String(), data_key="pushIds")


class DeltaSyncIn(Schema):
    sync_number = fields.Integer(data_key="syncNumber", **_sync_number)
    notes = fields.List(fields.Nested(NoteSchema), load_default=list)
    # demande l'ensemble complet des notes de l'owner (resync forcée)
    full = fields.Boolean(load_default=False)


class DeltaSyncOut(Schema):
    type = fields.String(required=True, validate=validate.OneOf([DELTA_OK, DELTA_REQUIRE_QUEUE]))
    notes = fields.List(fields.Nested(NoteSchema))
    sync_number = fields.Integer(data_key="syncNumber")


class FetchNotesIn(Schema):
    ids = fields.List(fields.String(validate=validate.Length(min=1, max=128)), load_default=None)


class MergeNotesIn(Schema):
    notes = fields.List(fields.Nested(NoteSchema), required=True)


class ClientLogIn(Schema):
    message = fields.String(required=True, validate=validate.Length(min=1, max=10000))
