from __future__ import annotations
from typing import Any, Dict, Optional
from .contracts import AuthErrorCodes, ErrorPayload


class TokenIssuerError(Exception):
    type: str = "INTERNAL"
    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def with_context(self, context: str) -> "TokenIssuerError":
        """Same error kind, message prefixed with the failing operation."""
        return type(self)(f"{context}: {self.message}", details=self.details)

    def to_payload(self) -> ErrorPayload:
        return ErrorPayload(type=self.type, code=self.code, message=self.message, details=self.details)


class ValidationError(TokenIssuerError):
    """Malformed caller input (empty subject id, missing tokens)."""
    type = "VALIDATION"
    code = AuthErrorCodes.VALIDATION_ERROR
    status_code = 400


class InvalidTokenError(TokenIssuerError):
    """Authentication failure: bad/expired access token or unusable refresh token."""
    type = "AUTH_ERROR"
    code = AuthErrorCodes.INVALID_TOKEN
    status_code = 401


class CryptoError(TokenIssuerError):
    """Random source, signing or hashing failure."""
    type = "INTERNAL"
    code = AuthErrorCodes.CRYPTO_ERROR
    status_code = 500


class StorageError(TokenIssuerError):
    """Refresh token store unreachable or rejecting the read/write."""
    type = "UPSTREAM"
    code = AuthErrorCodes.STORAGE_ERROR
    status_code = 503


class OperationCancelledError(TokenIssuerError):
    type = "CANCELLED"
    code = AuthErrorCodes.DEADLINE_EXCEEDED
    status_code = 504
