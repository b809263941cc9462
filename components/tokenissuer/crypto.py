from __future__ import annotations
import base64
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

import bcrypt
import jwt
from pydantic import ValidationError as ClaimsValidationError

from .contracts import AccessTokenClaims, ClockPort, TokenCryptoPort
from .errors import CryptoError, InvalidTokenError

SIGNING_ALGORITHM = "HS512"
HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")

# bcrypt only reads the first 72 bytes; 54 random bytes encode to exactly 72.
MIN_REFRESH_TOKEN_LENGTH = 16
MAX_REFRESH_TOKEN_LENGTH = 54

RandomSource = Callable[[int], bytes]


class SystemClock(ClockPort):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class CryptoService(TokenCryptoPort):
    """
    Access tokens are HS512 JWTs carrying the subject in the `guid` claim.
    Refresh tokens are opaque random strings; only their bcrypt hash leaves
    this class.
    """
    def __init__(
        self,
        *,
        secret_key: bytes,
        access_token_ttl: timedelta,
        refresh_token_length: int = 32,
        hash_cost_factor: Optional[int] = None,
        clock: Optional[ClockPort] = None,
        random_source: Optional[RandomSource] = None,
    ):
        if not secret_key:
            raise ValueError("CryptoService requires non-empty secret key")
        if not MIN_REFRESH_TOKEN_LENGTH <= refresh_token_length <= MAX_REFRESH_TOKEN_LENGTH:
            raise ValueError(
                f"refresh_token_length must be within "
                f"[{MIN_REFRESH_TOKEN_LENGTH}, {MAX_REFRESH_TOKEN_LENGTH}], got {refresh_token_length}"
            )
        self._key = secret_key
        self._access_token_ttl = access_token_ttl
        self._refresh_token_length = refresh_token_length
        self._hash_cost_factor = hash_cost_factor
        self._clock = clock or SystemClock()
        self._random_source = random_source or secrets.token_bytes

    # --------- Access tokens ----------
    def generate_access_token(self, subject_id: str) -> str:
        now = self._clock.now()
        claims = AccessTokenClaims(
            guid=subject_id,
            iat=int(now.timestamp()),
            exp=int((now + self._access_token_ttl).timestamp()),
            jti=uuid.uuid4().hex,
        )
        try:
            return jwt.encode(claims.model_dump(), self._key, algorithm=SIGNING_ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as ex:
            raise CryptoError(f"failed to sign access token: {ex}") from ex

    def parse_access_token(self, token: str) -> str:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as ex:
            raise InvalidTokenError(f"malformed token: {ex}") from ex

        # Reject algorithm substitution before the key is ever used.
        if header.get("alg") not in HMAC_ALGORITHMS:
            raise InvalidTokenError("unexpected signing method")

        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=list(HMAC_ALGORITHMS),
                options={"require": ["exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as ex:
            raise InvalidTokenError(str(ex)) from ex

        try:
            claims = AccessTokenClaims.model_validate(payload)
        except ClaimsValidationError as ex:
            raise InvalidTokenError("invalid token claims") from ex

        # exp is checked here rather than by PyJWT so the injected clock decides.
        if self._clock.now().timestamp() >= claims.exp:
            raise InvalidTokenError("token is expired")
        if not claims.guid:
            raise InvalidTokenError("token has no subject")
        return claims.guid

    # --------- Refresh tokens ----------
    def generate_refresh_token(self) -> Tuple[str, bytes]:
        try:
            raw = self._random_source(self._refresh_token_length)
        except (OSError, NotImplementedError) as ex:
            raise CryptoError(f"failed to read random bytes: {ex}") from ex
        if len(raw) != self._refresh_token_length:
            raise CryptoError("random source returned a short read")

        token = base64.urlsafe_b64encode(raw).decode("ascii")
        try:
            salt = bcrypt.gensalt(rounds=self._hash_cost_factor) if self._hash_cost_factor else bcrypt.gensalt()
            token_hash = bcrypt.hashpw(token.encode("ascii"), salt)
        except ValueError as ex:
            raise CryptoError(f"failed to hash refresh token: {ex}") from ex
        return token, token_hash

    def compare_refresh_tokens(self, token_hash: bytes, token: str) -> None:
        try:
            ok = bcrypt.checkpw(token.encode("utf-8"), token_hash)
        except ValueError as ex:
            raise InvalidTokenError(f"unusable refresh token: {ex}") from ex
        if not ok:
            raise InvalidTokenError("refresh token mismatch")
