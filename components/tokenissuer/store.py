from __future__ import annotations

import threading
from datetime import timedelta
from typing import Dict, Optional

from .contracts import ClockPort, RefreshTokenRecord, RefreshTokenStorePort
from .crypto import SystemClock


class InMemoryRefreshTokenStore(RefreshTokenStorePort):
    """Thread-safe in-memory store with coarse-grained lock.

    For single-process dev/testing. Records are never evicted; expiry is
    judged by the reader.
    """

    def __init__(self, clock: Optional[ClockPort] = None) -> None:
        self._records: Dict[str, RefreshTokenRecord] = {}
        self._lock = threading.RLock()
        self._clock = clock or SystemClock()

    async def save(self, subject_id: str, token_hash: bytes, ttl: timedelta) -> None:
        record = RefreshTokenRecord(
            subject_id=subject_id,
            token_hash=token_hash,
            expires_at=self._clock.now() + ttl,
        )
        with self._lock:
            self._records[subject_id] = record

    async def get(self, subject_id: str) -> Optional[RefreshTokenRecord]:
        with self._lock:
            return self._records.get(subject_id)
