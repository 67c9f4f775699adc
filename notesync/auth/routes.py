from flask import Blueprint, jsonify, g, current_app

from notesync.auth.schemas import MeOut
from notesync.auth.service import revoke_client
from notesync.common.authz import client_required

bp = Blueprint("auth", __name__)

me_out = MeOut()


@bp.get("/me")
@client_required
def me():
    client = g.client
    data = {
        "username": client.username,
        "sync_number": client.sync_number,
        "last_activity_date": client.last_activity_date,
    }
    return jsonify(me_out.dump(data)), 200


@bp.post("/logout")
@client_required
def logout():
    # idempotent côté client: le token disparaît, la prochaine requête sera 401
    revoke_client(g.pop("client"))
    resp = jsonify({"status": "success", "message": "client token revoked"})
    resp.delete_cookie(current_app.config["TOKEN_COOKIE_NAME"], path="/")
    return resp, 200
