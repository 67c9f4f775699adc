from sqlalchemy import ForeignKey
from notesync.extensions import db

class Client(db.Model):
    """
    Un appareil / navigateur connecté. Le token est une capability opaque;
    sync_number = dernière valeur du compteur owner entièrement intégrée par ce client.
    """
    __tablename__ = "clients"

    token = db.Column(db.String(128), primary_key=True)
    username = db.Column(db.String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False, index=True)
    sync_number = db.Column(db.Integer, nullable=False, default=0)
    last_activity_date = db.Column(db.String(40), nullable=False)

    user = db.relationship("User", back_populates="clients")

    # --- Helpers (aucun impact schéma) ---
    @property
    def label(self) -> str:
        """Identité abrégée pour les logs: 'alice (3fa2c)'."""
        return f"{self.username} ({self.token[:5]})"

    def catch_up(self, sync_number: int) -> None:
        # non décroissant
        if sync_number > (self.sync_number or 0):
            self.sync_number = sync_number
