import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

CUSTOMER = "customer"
OWNER = "owner"
DEFAULT_OWNER = "default_owner"


@dataclass(frozen=True)
class SessionIdentity:
    """Who a session token belongs to. `id` is None for the default owner."""
    kind: str
    id: Optional[int] = None


class SessionStore:
    """
    In-memory map of opaque tokens to (identity, expiry).
    The order and cart code never sees this store; request handlers resolve
    a token to an identity and pass the id along.
    """

    def __init__(self, ttl: timedelta = timedelta(days=30), clock: Callable[[], datetime] = datetime.now):
        self.ttl = ttl
        self._clock = clock
        self._tokens: Dict[str, Tuple[SessionIdentity, datetime]] = {}
        self._lock = threading.Lock()

    def issue(self, identity: SessionIdentity) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._tokens[token] = (identity, self._clock() + self.ttl)
        return token

    def lookup_session(self, token: str) -> Optional[Tuple[SessionIdentity, datetime]]:
        """Returns (identity, expiry), or None for unknown or expired tokens."""
        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return None
            if self._clock() > entry[1]:
                # Expired tokens are evicted on first sight.
                del self._tokens[token]
                return None
            return entry

    def revoke(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)

    def revoke_identity(self, identity: SessionIdentity) -> int:
        """Drops every token held by `identity`. Returns how many were dropped."""
        with self._lock:
            tokens = [token for token, (held_by, _) in self._tokens.items() if held_by == identity]
            for token in tokens:
                del self._tokens[token]
        return len(tokens)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
