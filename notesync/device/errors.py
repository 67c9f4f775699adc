UNAUTHORIZED = "unauthorized"
REQUIRES_UPGRADE = "requires_upgrade"
NETWORK = "network"
INVALID_REQUEST = "invalid_request"
SERVER = "server"

# Ne se résolvent pas en réessayant: on arrête de planifier des cycles
TERMINAL_KINDS = frozenset({UNAUTHORIZED, REQUIRES_UPGRADE})


class SyncFailure(Exception):
    """Condition présentable à l'UI: un type (kind) + un message lisible."""

    def __init__(self, kind: str, message: str, details=None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @property
    def terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def __repr__(self):
        return f"SyncFailure(kind={self.kind!r}, message={self.message!r})"
