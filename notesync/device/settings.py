import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class SyncSettings:
    base_url: str = "http://localhost:5000"
    token: str | None = None
    # secondes
    interval: float = 5.0
    debounce: float = 0.5
    timeout: float = 10.0
    # allers-retours queue/delta max par cycle avant d'abandonner jusqu'au prochain déclencheur
    max_rounds: int = 3

    @classmethod
    def from_env(cls) -> "SyncSettings":
        load_dotenv()
        return cls(
            base_url=os.getenv("NOTESYNC_BASE_URL", cls.base_url),
            token=os.getenv("NOTESYNC_TOKEN") or None,
            interval=float(os.getenv("NOTESYNC_SYNC_INTERVAL", cls.interval)),
            debounce=float(os.getenv("NOTESYNC_SYNC_DEBOUNCE", cls.debounce)),
            timeout=float(os.getenv("NOTESYNC_REQUEST_TIMEOUT", cls.timeout)),
            max_rounds=int(os.getenv("NOTESYNC_MAX_ROUNDS", cls.max_rounds)),
        )
