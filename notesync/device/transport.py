"""HTTP transport used by the sync coordinator.

Every transport-level problem is turned into a :class:`SyncFailure` here so the
coordinator (and the UI above it) never sees a raw ``httpx`` exception.
"""
import json

import httpx
from marshmallow import ValidationError

from notesync.device.errors import (
    INVALID_REQUEST, NETWORK, REQUIRES_UPGRADE, SERVER, UNAUTHORIZED, SyncFailure,
)
from notesync.notes.schemas import NoteSchema
from notesync.sync.schemas import DeltaSyncIn, DeltaSyncOut, QueueSyncIn, QueueSyncOut

PROTOCOL_VERSION = 3
PROTOCOL_HEADER = "X-Client-Protocol-Version"

_queue_in = QueueSyncIn()
_queue_out = QueueSyncOut()
_delta_in = DeltaSyncIn()
_delta_out = DeltaSyncOut()
_notes = NoteSchema(many=True)


def _failure_from_response(response: httpx.Response) -> SyncFailure:
    try:
        payload = response.json().get("error") or {}
    except (json.JSONDecodeError, AttributeError):
        payload = {}

    code = payload.get("code", f"http_{response.status_code}")
    message = payload.get("message") or response.reason_phrase
    details = {"status_code": response.status_code, "code": code}

    if code == "app_requires_update":
        return SyncFailure(REQUIRES_UPGRADE, "This app version is too old, please refresh it.", details)
    if response.status_code == 401:
        return SyncFailure(UNAUTHORIZED, "Your session has expired, please log in again.", details)
    if response.status_code in (400, 413, 422):
        return SyncFailure(INVALID_REQUEST, message, details)
    # 429, 5xx...: le prochain cycle réessaiera
    return SyncFailure(SERVER, message, details)


class HttpTransport:
    def __init__(self, base_url: str, token: str | None, timeout: float = 10.0,
                 protocol_version: int = PROTOCOL_VERSION, transport=None):
        headers = {PROTOCOL_HEADER: str(protocol_version)}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings, transport=None) -> "HttpTransport":
        return cls(settings.base_url, settings.token, timeout=settings.timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, body: dict):
        try:
            response = self._client.post(path, json=body)
        except httpx.TimeoutException as exc:
            raise SyncFailure(NETWORK, "The server did not answer in time.") from exc
        except httpx.TransportError as exc:
            raise SyncFailure(NETWORK, f"Could not reach the server: {exc}") from exc

        if not response.is_success:
            raise _failure_from_response(response)
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise SyncFailure(SERVER, "The server sent an unreadable response.") from exc

    def _load(self, schema, payload):
        try:
            return schema.load(payload)
        except ValidationError as exc:
            raise SyncFailure(SERVER, "The server sent an unexpected response.", {"errors": exc.messages}) from exc

    def queue_sync(self, sync_number: int, note_heads: list) -> dict:
        body = _queue_in.dump({"sync_number": sync_number, "note_heads": note_heads})
        return self._load(_queue_out, self._post("/api/v1/sync/queue", body))

    def delta_sync(self, sync_number: int, notes: list, full: bool = False) -> dict:
        body = _delta_in.dump({"sync_number": sync_number, "notes": notes, "full": full})
        return self._load(_delta_out, self._post("/api/v1/sync/delta", body))

    def fetch_notes(self, ids: list | None = None) -> list:
        body = {} if ids is None else {"ids": list(ids)}
        return self._load(_notes, self._post("/api/v1/sync/notes", body))

    def merge_notes(self, notes: list) -> int:
        res = self._post("/api/v1/sync/merge", {"notes": _notes.dump(notes)})
        return res.get("accepted", 0)

    def report(self, message: str, error: bool = False) -> None:
        self._post("/api/v1/error" if error else "/api/v1/log", {"message": message})
