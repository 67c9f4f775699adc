# notesync/docs/spec.py
from apispec import APISpec
from apispec.ext.marshmallow import MarshmallowPlugin
from marshmallow import Schema, fields

from notesync.auth.schemas import MeOut
from notesync.notes.schemas import NoteSchema, NoteHeadSchema
from notesync.sync.schemas import (
    QueueSyncIn, QueueSyncOut, DeltaSyncIn, DeltaSyncOut, FetchNotesIn, MergeNotesIn, ClientLogIn,
)

class ErrorBodySchema(Schema):
    code = fields.String()
    message = fields.String()
    details = fields.Dict()

class ErrorSchema(Schema):
    error = fields.Nested(ErrorBodySchema)

class MessageSchema(Schema):
    status = fields.String()
    message = fields.String()

class MergeResultSchema(Schema):
    ok = fields.Boolean()
    accepted = fields.Integer()

def _ref(name: str):
    return {"$ref": f"#/components/schemas/{name}"}

def _json(name: str):
    return {"application/json": {"schema": _ref(name)}}

_VERSION_HEADER = {
    "in": "header",
    "name": "X-Client-Protocol-Version",
    "required": True,
    "schema": {"type": "integer"},
}

_COMMON_ERRORS = {
    "400": {"description": "validation_error | app_requires_update", "content": _json("Error")},
    "401": {"description": "unauthorized", "content": _json("Error")},
    "413": {"description": "too_many_notes", "content": _json("Error")},
}

def _sync_op(summary, req, res):
    return {
        "post": {
            "summary": summary,
            "security": [{"tokenAuth": []}, {"cookieAuth": []}],
            "parameters": [_VERSION_HEADER],
            "requestBody": {"required": True, "content": _json(req)},
            "responses": {"200": {"description": "OK", "content": _json(res)}, **_COMMON_ERRORS},
        }
    }

def build_spec():
    spec = APISpec(
        title="notesync API",
        version="1.0.0",
        openapi_version="3.0.3",
        info={"description": "Offline note synchronization: queue-sync / delta-sync protocol"},
        plugins=[MarshmallowPlugin()],
    )

    # Token opaque (Bearer ou cookie)
    spec.components.security_scheme("tokenAuth", {"type": "http", "scheme": "bearer"})
    spec.components.security_scheme("cookieAuth", {"type": "apiKey", "in": "cookie", "name": "notesync_token"})

    # Composants
    spec.components.schema("Note", schema=NoteSchema)
    spec.components.schema("NoteHead", schema=NoteHeadSchema)
    spec.components.schema("QueueSyncIn", schema=QueueSyncIn)
    spec.components.schema("QueueSyncOut", schema=QueueSyncOut)
    spec.components.schema("DeltaSyncIn", schema=DeltaSyncIn)
    spec.components.schema("DeltaSyncOut", schema=DeltaSyncOut)
    spec.components.schema("FetchNotesIn", schema=FetchNotesIn)
    spec.components.schema("MergeNotesIn", schema=MergeNotesIn)
    spec.components.schema("ClientLog", schema=ClientLogIn)
    spec.components.schema("Me", schema=MeOut)
    spec.components.schema("Error", schema=ErrorSchema)
    spec.components.schema("Message", schema=MessageSchema)
    spec.components.schema("MergeResult", schema=MergeResultSchema)

    # ---- SYNC ----
    spec.path(path="/api/v1/sync/queue",
              operations=_sync_op("Queue-sync (heads only)", "QueueSyncIn", "QueueSyncOut"))
    spec.path(path="/api/v1/sync/delta",
              operations=_sync_op("Delta-sync (full notes)", "DeltaSyncIn", "DeltaSyncOut"))
    spec.path(path="/api/v1/sync/merge",
              operations=_sync_op("Bulk import merge (no syncNumber gate)", "MergeNotesIn", "MergeResult"))

    fetch = _sync_op("Fetch notes by id (all when ids is omitted)", "FetchNotesIn", "Note")
    fetch["post"]["responses"]["200"] = {
        "description": "OK",
        "content": {"application/json": {"schema": {"type": "array", "items": _ref("Note")}}}
    }
    spec.path(path="/api/v1/sync/notes", operations=fetch)

    # ---- AUTH ----
    spec.path(
        path="/api/v1/auth/me",
        operations={
            "get": {
                "summary": "Current client session",
                "security": [{"tokenAuth": []}, {"cookieAuth": []}],
                "responses": {"200": {"description": "OK", "content": _json("Me")}, "401": {"description": "Unauthorized"}},
            }
        },
    )
    spec.path(
        path="/api/v1/auth/logout",
        operations={
            "post": {
                "summary": "Revoke the current client token",
                "security": [{"tokenAuth": []}, {"cookieAuth": []}],
                "responses": {"200": {"description": "OK", "content": _json("Message")}, "401": {"description": "Unauthorized"}},
            }
        },
    )

    # ---- DEVICE LOGS ----
    for path, summary in (("/api/v1/log", "Relay a device log line"), ("/api/v1/error", "Relay a device error")):
        spec.path(
            path=path,
            operations={
                "post": {
                    "summary": summary,
                    "requestBody": {"required": True, "content": _json("ClientLog")},
                    "responses": {"200": {"description": "OK"}},
                }
            },
        )

    return spec.to_dict()
