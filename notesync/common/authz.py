from functools import wraps
from flask import current_app, g, request
from notesync.common.errors import ApiError

PROTOCOL_HEADER = "X-Client-Protocol-Version"

def _token_from_request() -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(current_app.config["TOKEN_COOKIE_NAME"]) or request.args.get("token")

def load_client():
    """Résout le token (header, cookie ou ?token=) en Client, ou None."""
    if "client" not in g:
        from notesync.auth.service import find_client
        g.client = find_client(_token_from_request())
    return g.client

def client_required(fn):
    """
    Ex: @client_required
        -> g.client est garanti, sinon 401 avant d'atteindre le handler.
    """
    @wraps(fn)
    def inner(*args, **kwargs):
        if load_client() is None:
            raise ApiError("Unauthorized", status_code=401, code="unauthorized")
        return fn(*args, **kwargs)
    return inner

def protocol_required(fn):
    """Refuse les clients dont la version de protocole est absente ou trop ancienne."""
    @wraps(fn)
    def inner(*args, **kwargs):
        minimum = current_app.config["MIN_CLIENT_PROTOCOL_VERSION"]
        raw = request.headers.get(PROTOCOL_HEADER)
        try:
            version = int(raw)
        except (TypeError, ValueError):
            version = None
        if version is None or version < minimum:
            raise ApiError(
                "App requires update",
                status_code=400,
                code="app_requires_update",
                details={"client_version": raw, "min_version": minimum},
            )
        return fn(*args, **kwargs)
    return inner
