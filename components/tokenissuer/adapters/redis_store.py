from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..contracts import ClockPort, RefreshTokenRecord, RefreshTokenStorePort
from ..crypto import SystemClock
from ..errors import StorageError

log = logging.getLogger("tokenissuer.redis_store")


class RedisRefreshTokenStore(RefreshTokenStorePort):
    """
    One Redis hash per subject at `<prefix><subject_id>` with fields
    guid / hash / expires_at. A single HSET replaces all fields, so each
    save is an atomic upsert. No Redis TTL is set: expired records stay
    readable and are rejected as expired by the caller.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[redis.Redis] = None,
        key_prefix: str = "refresh_tokens:",
        clock: Optional[ClockPort] = None,
    ):
        if client is None and not redis_url:
            raise ValueError("RedisRefreshTokenStore requires redis_url or client")
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._client = client
        self._clock = clock or SystemClock()

    async def start(self) -> None:
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
            )
        try:
            await self._client.ping()
        except RedisError as ex:
            log.error("redis.start failed url=%s error=%s", self.redis_url, ex)
            raise StorageError(f"failed to connect to redis: {ex}") from ex
        log.info("redis.start ok prefix=%s", self.key_prefix)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("redis.stop ok")

    def _key(self, subject_id: str) -> str:
        return f"{self.key_prefix}{subject_id}"

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise StorageError("redis store is not started")
        return self._client

    async def save(self, subject_id: str, token_hash: bytes, ttl: timedelta) -> None:
        client = self._require_client()
        expires_at = self._clock.now() + ttl
        try:
            await client.hset(
                self._key(subject_id),
                mapping={"guid": subject_id, "hash": token_hash, "expires_at": expires_at.isoformat()},
            )
        except RedisError as ex:
            raise StorageError(str(ex)) from ex

    async def get(self, subject_id: str) -> Optional[RefreshTokenRecord]:
        client = self._require_client()
        try:
            data = await client.hgetall(self._key(subject_id))
        except RedisError as ex:
            raise StorageError(str(ex)) from ex
        if not data:
            return None
        try:
            return RefreshTokenRecord(
                subject_id=data[b"guid"].decode("utf-8"),
                token_hash=data[b"hash"],
                expires_at=datetime.fromisoformat(data[b"expires_at"].decode("ascii")),
            )
        except (KeyError, ValueError) as ex:
            raise StorageError(f"corrupt refresh token record for key {self._key(subject_id)}") from ex
