from sqlalchemy import ForeignKey
from notesync.extensions import db

# Champs versionnés ensemble (le record entier gagne ou perd)
PAYLOAD_FIELDS = ("id", "text", "modification_date", "not_archived", "pinned", "not_deleted")

class Note(db.Model):
    __tablename__ = "notes"

    username = db.Column(db.String(64), ForeignKey("users.username", ondelete="CASCADE"), primary_key=True)
    id = db.Column(db.String(128), primary_key=True)

    # contenu opaque (chiffré côté appareil); None = payload absent
    text = db.Column(db.Text, nullable=True)
    modification_date = db.Column(db.String(40), nullable=False)
    not_archived = db.Column(db.Integer, nullable=False, default=1)
    pinned = db.Column(db.Integer, nullable=False, default=0)
    # 0 = tombstone; la ligne reste pour propager la suppression
    not_deleted = db.Column(db.Integer, nullable=False, default=1)

    # valeur du compteur owner lors de la dernière mutation acceptée
    sync_number = db.Column(db.Integer, nullable=False, default=0, index=True)

    owner = db.relationship("User", back_populates="notes")

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in PAYLOAD_FIELDS}

    def assign(self, payload: dict, sync_number: int) -> None:
        for name in PAYLOAD_FIELDS:
            if name != "id":
                setattr(self, name, payload.get(name))
        self.sync_number = sync_number
