from sqlalchemy import func
from notesync.extensions import db

class User(db.Model):
    """Propriétaire des notes; porte le compteur de sync (horloge logique par owner)."""
    __tablename__ = "users"

    username = db.Column(db.String(64), primary_key=True)
    # incrémenté une fois par mutation de note acceptée, jamais décrémenté
    sync_counter = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    clients = db.relationship("Client", back_populates="user", lazy="selectin", cascade="all, delete-orphan")
    notes = db.relationship("Note", back_populates="owner", lazy="dynamic")

    def advance(self, steps: int = 1) -> int:
        self.sync_counter = (self.sync_counter or 0) + steps
        return self.sync_counter
