# Relais des logs émis par les appareils vers les logs serveur
import logging
from flask import Blueprint, request, jsonify, current_app

from notesync.common.authz import load_client
from notesync.extensions import limiter
from notesync.sync.schemas import ClientLogIn

bp = Blueprint("reports", __name__)
log = logging.getLogger("notesync.device")

client_log_in = ClientLogIn()

def _who() -> str:
    client = load_client()
    return client.label if client else "anonymous"

@bp.post("/log")
@limiter.limit(lambda: current_app.config.get("RATELIMIT_CLIENT_LOG", "30/minute"))
def client_log():
    data = client_log_in.load(request.get_json(silent=True) or {})
    log.info("client log: " + data["message"], extra={"client": _who()})
    return jsonify({"ok": True}), 200

@bp.post("/error")
@limiter.limit(lambda: current_app.config.get("RATELIMIT_CLIENT_LOG", "30/minute"))
def client_error():
    data = client_log_in.load(request.get_json(silent=True) or {})
    log.error("client error: " + data["message"], extra={"client": _who()})
    return jsonify({"ok": True}), 200
