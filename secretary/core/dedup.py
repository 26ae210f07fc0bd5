"""Short-lived de-duplication of inbound deliveries.

Webhook transports redeliver when they do not see a fast acknowledgement.
A key seen within the TTL is reported as a duplicate; entries expire on a
fixed delay after first sight, independent of when processing finishes.
"""

from __future__ import annotations

import time
from typing import Callable


class DeliveryDeduplicator:
    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._seen: dict[str, float] = {}

    def _purge(self, now: float) -> None:
        expired = [key for key, expires in self._seen.items() if expires <= now]
        for key in expired:
            del self._seen[key]

    def is_duplicate(self, key: str) -> bool:
        """Record key and report whether it was already being processed."""
        now = self._clock()
        self._purge(now)
        if key in self._seen:
            return True
        self._seen[key] = now + self._ttl
        return False

    def __len__(self) -> int:
        return len(self._seen)
