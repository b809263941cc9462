from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional, Protocol, Tuple
from pydantic import BaseModel, Field, constr

# ---------- Unified Wire Format (UWF) ----------
class ErrorPayload(BaseModel):
    type: Literal["AUTH_ERROR", "VALIDATION", "UPSTREAM", "CANCELLED", "INTERNAL"]
    code: constr(strip_whitespace=True, min_length=1)
    message: constr(strip_whitespace=True, min_length=1)
    details: Optional[Dict[str, Any]] = None

class MetaPayload(BaseModel):
    request_id: Optional[str] = None
    duration_ms: Optional[int] = None

class UWFResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: MetaPayload = Field(default_factory=MetaPayload)

# ---------- Domain Models ----------
class AccessTokenClaims(BaseModel):
    guid: str
    iat: int
    exp: int
    jti: str

class RefreshTokenRecord(BaseModel):
    """One record per subject; `token_hash` is bcrypt output, never the plaintext."""
    subject_id: str
    token_hash: bytes
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return not self.expires_at > now

class IssuedTokens(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int

# ---------- Ports (Contracts) ----------
class ClockPort(Protocol):
    def now(self) -> datetime: ...

class TokenCryptoPort(Protocol):
    """
    Contract for access token signing/verification and refresh token hashing.
    """
    def generate_access_token(self, subject_id: str) -> str: ...
    def parse_access_token(self, token: str) -> str: ...
    def generate_refresh_token(self) -> Tuple[str, bytes]: ...
    def compare_refresh_tokens(self, token_hash: bytes, token: str) -> None: ...

class RefreshTokenStorePort(Protocol):
    """
    Keyed record store: one refresh token record per subject.
    `get` returns None when no record exists; failures raise StorageError.
    """
    async def save(self, subject_id: str, token_hash: bytes, ttl: timedelta) -> None: ...
    async def get(self, subject_id: str) -> Optional[RefreshTokenRecord]: ...

# ---------- Service I/O ----------
class LoginRequest(BaseModel):
    guid: str = ""

class RefreshRequest(BaseModel):
    access_token: str = ""
    refresh_token: str = ""

# ---------- Errors ----------
class AuthErrorCodes:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TOKEN = "INVALID_TOKEN"
    CRYPTO_ERROR = "CRYPTO_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
