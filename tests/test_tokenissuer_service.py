import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from components.tokenissuer.crypto import CryptoService
from components.tokenissuer.errors import (
    CryptoError,
    InvalidTokenError,
    OperationCancelledError,
    StorageError,
    ValidationError,
)
from components.tokenissuer.service import AuthService
from components.tokenissuer.store import InMemoryRefreshTokenStore

SECRET = b"s" * 64
ACCESS_TTL = timedelta(minutes=15)
REFRESH_TTL = timedelta(hours=720)


# ---- Fakes ----
class FakeClock:
    def __init__(self):
        self.current = datetime.now(timezone.utc).replace(microsecond=0)

    def now(self):
        return self.current

    def advance(self, **kw):
        self.current += timedelta(**kw)


class FailingStore:
    def __init__(self, fail_save=True, fail_get=True):
        self.fail_save = fail_save
        self.fail_get = fail_get
        self.inner = InMemoryRefreshTokenStore()

    async def save(self, subject_id, token_hash, ttl):
        if self.fail_save:
            raise StorageError("connection refused")
        await self.inner.save(subject_id, token_hash, ttl)

    async def get(self, subject_id):
        if self.fail_get:
            raise StorageError("connection refused")
        return await self.inner.get(subject_id)


class SlowStore:
    def __init__(self, delay):
        self.delay = delay
        self.inner = InMemoryRefreshTokenStore()

    async def save(self, subject_id, token_hash, ttl):
        await asyncio.sleep(self.delay)
        await self.inner.save(subject_id, token_hash, ttl)

    async def get(self, subject_id):
        return await self.inner.get(subject_id)


def make_service(clock=None, store=None, random_source=None):
    clock = clock or FakeClock()
    store = store if store is not None else InMemoryRefreshTokenStore(clock=clock)
    crypto = CryptoService(
        secret_key=SECRET,
        access_token_ttl=ACCESS_TTL,
        hash_cost_factor=4,
        clock=clock,
        random_source=random_source,
    )
    svc = AuthService(
        store=store,
        crypto=crypto,
        access_token_ttl=ACCESS_TTL,
        refresh_token_ttl=REFRESH_TTL,
        clock=clock,
    )
    return svc, store, crypto


# ---- Login ----
@pytest.mark.asyncio
async def test_login_issues_pair_and_stores_hash():
    clock = FakeClock()
    svc, store, crypto = make_service(clock)

    tokens = await svc.login("user-1")

    assert tokens.token_type == "Bearer"
    assert tokens.expires_in == 900
    assert crypto.parse_access_token(tokens.access_token) == "user-1"

    record = await store.get("user-1")
    assert record.subject_id == "user-1"
    assert record.expires_at == clock.now() + REFRESH_TTL
    assert record.token_hash != tokens.refresh_token.encode()
    crypto.compare_refresh_tokens(record.token_hash, tokens.refresh_token)


@pytest.mark.asyncio
@pytest.mark.parametrize("subject", ["", "   "])
async def test_login_rejects_blank_subject(subject):
    svc, store, _ = make_service()
    with pytest.raises(ValidationError):
        await svc.login(subject)
    assert await store.get(subject) is None


@pytest.mark.asyncio
async def test_second_login_overwrites_previous_refresh_token():
    svc, _, _ = make_service()
    first = await svc.login("user-1")
    second = await svc.login("user-1")

    with pytest.raises(InvalidTokenError, match="invalid token"):
        await svc.refresh(second.access_token, first.refresh_token)
    assert (await svc.refresh(second.access_token, second.refresh_token)).refresh_token


@pytest.mark.asyncio
async def test_login_random_source_failure_leaves_no_record():
    def broken(n):
        raise OSError("entropy source unavailable")

    svc, store, _ = make_service(random_source=broken)
    with pytest.raises(CryptoError) as exc_info:
        await svc.login("user-2")

    assert str(exc_info.value).startswith("failed to generate refresh token:")
    assert await store.get("user-2") is None


@pytest.mark.asyncio
async def test_login_storage_failure_is_storage_error_with_context():
    svc, _, _ = make_service(store=FailingStore())
    with pytest.raises(StorageError, match="failed to save refresh token: connection refused"):
        await svc.login("user-1")


# ---- Refresh ----
@pytest.mark.asyncio
async def test_login_refresh_then_replay_fails():
    svc, _, _ = make_service()

    first = await svc.login("user-1")
    second = await svc.refresh(first.access_token, first.refresh_token)

    assert second.access_token != first.access_token
    assert second.refresh_token != first.refresh_token

    with pytest.raises(InvalidTokenError, match="invalid token"):
        await svc.refresh(first.access_token, first.refresh_token)


@pytest.mark.asyncio
async def test_refresh_rotates_stored_record():
    clock = FakeClock()
    svc, store, crypto = make_service(clock)
    first = await svc.login("user-1")
    before = await store.get("user-1")

    clock.advance(minutes=1)
    second = await svc.refresh(first.access_token, first.refresh_token)
    after = await store.get("user-1")

    assert after.token_hash != before.token_hash
    assert after.expires_at == clock.now() + REFRESH_TTL
    crypto.compare_refresh_tokens(after.token_hash, second.refresh_token)


@pytest.mark.asyncio
async def test_refresh_unknown_subject():
    svc, _, crypto = make_service()
    access = crypto.generate_access_token("ghost")
    with pytest.raises(InvalidTokenError, match="refresh token doesn't exist"):
        await svc.refresh(access, "whatever")


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [timedelta(seconds=-1), timedelta(0)])
async def test_refresh_expired_record_even_when_plaintext_matches(ttl):
    svc, store, crypto = make_service()
    plaintext, token_hash = crypto.generate_refresh_token()
    await store.save("user-3", token_hash, ttl)

    with pytest.raises(InvalidTokenError, match="refresh token is expired"):
        await svc.refresh(crypto.generate_access_token("user-3"), plaintext)


@pytest.mark.asyncio
async def test_refresh_fails_once_access_token_expired():
    # Refresh requires a live access token, even though the refresh token is still valid.
    clock = FakeClock()
    svc, store, _ = make_service(clock)
    tokens = await svc.login("user-1")
    before = await store.get("user-1")

    clock.advance(minutes=16)
    with pytest.raises(InvalidTokenError, match="failed to parse access token: token is expired"):
        await svc.refresh(tokens.access_token, tokens.refresh_token)
    assert (await store.get("user-1")).token_hash == before.token_hash


@pytest.mark.asyncio
async def test_refresh_with_tampered_access_token():
    svc, _, _ = make_service()
    tokens = await svc.login("user-1")
    head, payload, sig = tokens.access_token.split(".")
    bad_sig = ("A" if sig[0] != "A" else "B") + sig[1:]
    with pytest.raises(InvalidTokenError, match="failed to parse access token"):
        await svc.refresh(f"{head}.{payload}.{bad_sig}", tokens.refresh_token)


@pytest.mark.asyncio
@pytest.mark.parametrize("access, refresh", [("", "r"), ("a", "")])
async def test_refresh_rejects_missing_tokens(access, refresh):
    svc, _, _ = make_service()
    with pytest.raises(ValidationError):
        await svc.refresh(access, refresh)


@pytest.mark.asyncio
async def test_refresh_storage_failure_on_lookup():
    store = FailingStore(fail_save=False, fail_get=True)
    svc, _, _ = make_service(store=store)
    tokens = await svc.login("user-1")
    with pytest.raises(StorageError, match="failed to get refresh token"):
        await svc.refresh(tokens.access_token, tokens.refresh_token)


@pytest.mark.asyncio
async def test_mismatch_does_not_touch_store():
    svc, store, _ = make_service()
    tokens = await svc.login("user-1")
    before = await store.get("user-1")
    with pytest.raises(InvalidTokenError):
        await svc.refresh(tokens.access_token, "not-the-token")
    assert (await store.get("user-1")).token_hash == before.token_hash


# ---- Deadlines & concurrency ----
@pytest.mark.asyncio
async def test_login_deadline_exceeded_is_cancellation_error():
    store = SlowStore(delay=1.0)
    svc, _, _ = make_service(store=store)
    with pytest.raises(OperationCancelledError):
        await svc.login("user-1", timeout=0.05)
    assert await store.inner.get("user-1") is None


@pytest.mark.asyncio
async def test_login_within_deadline_succeeds():
    svc, _, _ = make_service(store=SlowStore(delay=0.0))
    tokens = await svc.login("user-1", timeout=5)
    assert tokens.refresh_token


@pytest.mark.asyncio
async def test_concurrent_logins_for_same_subject_last_writer_wins():
    svc, store, crypto = make_service()
    results = await asyncio.gather(svc.login("user-1"), svc.login("user-1"))

    record = await store.get("user-1")
    matches = 0
    for tokens in results:
        try:
            crypto.compare_refresh_tokens(record.token_hash, tokens.refresh_token)
            matches += 1
        except InvalidTokenError:
            pass
    assert matches == 1


@pytest.mark.asyncio
async def test_subjects_are_independent():
    svc, _, _ = make_service()
    a = await svc.login("user-a")
    b = await svc.login("user-b")
    await svc.refresh(a.access_token, a.refresh_token)
    assert (await svc.refresh(b.access_token, b.refresh_token)).access_token
