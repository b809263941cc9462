from __future__ import annotations
import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Optional, TypeVar

from .config import AuthSettings
from .contracts import ClockPort, IssuedTokens, RefreshTokenStorePort, TokenCryptoPort
from .crypto import CryptoService, SystemClock
from .errors import (
    CryptoError, InvalidTokenError, OperationCancelledError, StorageError, ValidationError,
)
from .adapters.redis_store import RedisRefreshTokenStore
from .store import InMemoryRefreshTokenStore

log = logging.getLogger("tokenissuer.service")

T = TypeVar("T")


class AuthService:
    """
    login:   sign access token -> mint refresh token + hash -> upsert record.
    refresh: verify access token -> load record -> check expiry -> compare
             hash -> login again (rotation overwrites the consumed record).
    Nothing is written to the store before the final login step.
    """

    def __init__(
        self,
        *,
        store: RefreshTokenStorePort,
        crypto: TokenCryptoPort,
        access_token_ttl: timedelta,
        refresh_token_ttl: timedelta,
        clock: Optional[ClockPort] = None,
    ):
        self.store = store
        self.crypto = crypto
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.clock = clock or SystemClock()

    # --------- Core operations ----------
    async def login(self, subject_id: str, *, timeout: Optional[float] = None) -> IssuedTokens:
        return await self._with_deadline("login", self._login(subject_id), timeout)

    async def refresh(
        self,
        access_token: str,
        refresh_token: str,
        *,
        timeout: Optional[float] = None,
    ) -> IssuedTokens:
        return await self._with_deadline("refresh", self._refresh(access_token, refresh_token), timeout)

    # --------- Steps ----------
    async def _login(self, subject_id: str) -> IssuedTokens:
        if not subject_id or not subject_id.strip():
            raise ValidationError("invalid guid")

        try:
            access_token = self.crypto.generate_access_token(subject_id)
        except CryptoError as ex:
            log.error("login failed subject=%s step=access_token error=%s", subject_id, ex)
            raise ex.with_context("failed to generate access token") from ex

        try:
            refresh_token, token_hash = await asyncio.to_thread(self.crypto.generate_refresh_token)
        except CryptoError as ex:
            log.error("login failed subject=%s step=refresh_token error=%s", subject_id, ex)
            raise ex.with_context("failed to generate refresh token") from ex

        try:
            await self.store.save(subject_id, token_hash, self.refresh_token_ttl)
        except StorageError as ex:
            log.error("login failed subject=%s step=save error=%s", subject_id, ex)
            raise ex.with_context("failed to save refresh token") from ex

        log.info("login ok subject=%s", subject_id)
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_ttl.total_seconds()),
        )

    async def _refresh(self, access_token: str, refresh_token: str) -> IssuedTokens:
        if not access_token:
            raise ValidationError("invalid access token")
        if not refresh_token:
            raise ValidationError("invalid refresh token")

        try:
            subject_id = self.crypto.parse_access_token(access_token)
        except InvalidTokenError as ex:
            log.warning("refresh rejected reason=access_token error=%s", ex)
            raise ex.with_context("failed to parse access token") from ex

        try:
            record = await self.store.get(subject_id)
        except StorageError as ex:
            log.error("refresh failed subject=%s step=get error=%s", subject_id, ex)
            raise ex.with_context("failed to get refresh token") from ex

        if record is None or not record.subject_id:
            log.warning("refresh rejected subject=%s reason=missing", subject_id)
            raise InvalidTokenError("refresh token doesn't exist")
        if record.is_expired(self.clock.now()):
            log.warning("refresh rejected subject=%s reason=expired", subject_id)
            raise InvalidTokenError("refresh token is expired")

        try:
            await asyncio.to_thread(self.crypto.compare_refresh_tokens, record.token_hash, refresh_token)
        except InvalidTokenError as ex:
            log.warning("refresh rejected subject=%s reason=mismatch", subject_id)
            raise ex.with_context("invalid token") from ex

        return await self._login(subject_id)

    async def _with_deadline(self, op: str, coro: Awaitable[T], timeout: Optional[float]) -> T:
        if timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError as ex:
            log.warning("%s deadline_exceeded timeout=%s", op, timeout)
            raise OperationCancelledError(f"{op} exceeded deadline of {timeout}s") from ex


# --------- Wiring ----------
def build_crypto_service(settings: AuthSettings, *, clock: Optional[ClockPort] = None) -> CryptoService:
    return CryptoService(
        secret_key=settings.secret_key_bytes(),
        access_token_ttl=settings.access_token_ttl,
        refresh_token_length=settings.refresh_token_length,
        hash_cost_factor=settings.hash_cost_factor,
        clock=clock,
    )


def build_store(settings: AuthSettings) -> RefreshTokenStorePort:
    if settings.store_backend == "redis":
        return RedisRefreshTokenStore(settings.redis_url, key_prefix=settings.redis_key_prefix)
    return InMemoryRefreshTokenStore()


def build_auth_service(
    settings: AuthSettings,
    *,
    store: Optional[RefreshTokenStorePort] = None,
    clock: Optional[ClockPort] = None,
) -> AuthService:
    return AuthService(
        store=store if store is not None else build_store(settings),
        crypto=build_crypto_service(settings, clock=clock),
        access_token_ttl=settings.access_token_ttl,
        refresh_token_ttl=settings.refresh_token_ttl,
        clock=clock,
    )
