import re
import secrets
from datetime import datetime, timezone

from notesync.extensions import db
from notesync.users.models import User
from notesync.auth.models import Client
from notesync.common.errors import ApiError

_USERNAME_RE = re.compile(r"^[^/\\<>&'\"\s]{3,64}$")

def normalize_username(username: str) -> str:
    return (username or "").strip().lower()

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def generate_token() -> str:
    # 64 octets aléatoires -> 128 caractères hex
    return secrets.token_hex(64)

def issue_client(username: str) -> Client:
    """Crée l'owner au besoin puis une nouvelle session client (sync_number = 0)."""
    username_n = normalize_username(username)
    if not _USERNAME_RE.match(username_n):
        raise ApiError("Invalid username.", 400, "validation_error", details={"username": username})

    user = db.session.get(User, username_n)
    if user is None:
        user = User(username=username_n, sync_counter=0)
        db.session.add(user)

    client = Client(username=username_n, token=generate_token(), sync_number=0, last_activity_date=now_iso())
    db.session.add(client)
    db.session.commit()
    return client

def find_client(token: str | None) -> Client | None:
    if not token:
        return None
    client = db.session.get(Client, token)
    if client is not None:
        client.last_activity_date = now_iso()
        db.session.commit()
    return client

def revoke_client(client: Client) -> None:
    db.session.delete(client)
    db.session.commit()
