"""Anti-forgery state tokens for the authorization redirect.

Each login attempt gets a random state token that OPSkins echoes back on the
callback. A callback is only accepted while its token is live: tokens expire
after a fixed window and are removed once consumed.
"""

import hmac
import logging
import secrets
import threading
import time
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

# Lifetime of an issued state token
DEFAULT_STATE_TTL = 600  # seconds

# Random bytes per token (hex-encoded to twice this length)
STATE_TOKEN_BYTES = 16


def generate_state() -> str:
    """Generate a cryptographically random state parameter.

    Returns:
        32-character random hex string
    """
    return secrets.token_hex(STATE_TOKEN_BYTES)


class StateTokenRegistry:
    """Live collection of issued state tokens with lazy expiry.

    Tokens are stored with their issue time and checked against the window
    on every lookup, so no timers are involved. Insertion order is kept.

    Args:
        ttl: Seconds a token stays valid after issuance
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl: float = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._tokens: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.tokens())

    def _is_live(self, issued_at: float, now: float) -> bool:
        return now - issued_at < self.ttl

    def _prune(self, now: float) -> None:
        expired = [t for t, issued in self._tokens.items() if not self._is_live(issued, now)]
        for token in expired:
            del self._tokens[token]
        if expired:
            logger.debug(f"Expired {len(expired)} state token(s)")

    def _find(self, token: str, now: float) -> str | None:
        # Constant-time comparison against every live token
        match = None
        token_bytes = token.encode("utf-8")
        for candidate, issued in self._tokens.items():
            if hmac.compare_digest(candidate.encode("utf-8"), token_bytes) and self._is_live(issued, now):
                match = candidate
        return match

    def issue(self) -> str:
        """Create, register and return a new state token."""
        token = generate_state()
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._tokens[token] = now
        return token

    def validate(self, token: str | None) -> bool:
        """Check whether a token is live, without consuming it."""
        if not token:
            return False
        with self._lock:
            return self._find(token, self._clock()) is not None

    def consume(self, token: str | None) -> bool:
        """Validate a token and remove it so it cannot be replayed.

        Returns:
            True if the token was live
        """
        if not token:
            return False
        with self._lock:
            now = self._clock()
            match = self._find(token, now)
            if match is None:
                self._prune(now)
                return False
            del self._tokens[match]
            self._prune(now)
            return True

    def replace(self, tokens: Iterable[str]) -> None:
        """Overwrite the live collection, e.g. with tokens from another process.

        Injected tokens start a fresh expiry window.
        """
        with self._lock:
            now = self._clock()
            self._tokens = {token: now for token in tokens if token}

    def tokens(self) -> list[str]:
        """Snapshot of the live tokens in issue order."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            return list(self._tokens)
