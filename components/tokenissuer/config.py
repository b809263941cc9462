from __future__ import annotations
import re
from datetime import timedelta
from typing import Literal, Optional, Union

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Accepts a timedelta, a number of seconds, or a duration string made of
    unit-suffixed parts such as "90s", "15m", "720h" or "1h30m".
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    text = str(value).strip().lower()
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if not text or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=total)


class AuthSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, frozen=True, extra="ignore")

    # Tokens
    access_token_ttl: timedelta = Field(default=timedelta(minutes=15))
    refresh_token_ttl: timedelta = Field(default=timedelta(hours=720))
    secret_key: SecretStr
    refresh_token_length: int = Field(default=32, ge=16, le=54)
    hash_cost_factor: Optional[int] = Field(default=None, ge=4, le=31)  # None -> bcrypt default

    # Store
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "refresh_tokens:"

    # Process
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    request_timeout: Optional[float] = Field(default=10.0, gt=0)  # seconds per login/refresh call

    @field_validator("access_token_ttl", "refresh_token_ttl", mode="before")
    @classmethod
    def parse_ttl(cls, v):
        return parse_duration(v)

    @field_validator("access_token_ttl", "refresh_token_ttl")
    @classmethod
    def positive_ttl(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("ttl must be positive")
        return v

    @field_validator("secret_key")
    @classmethod
    def non_empty_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("secret_key must not be empty")
        return v

    def secret_key_bytes(self) -> bytes:
        return self.secret_key.get_secret_value().encode("utf-8")
