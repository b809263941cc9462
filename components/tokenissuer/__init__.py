from .service import AuthService, build_auth_service, build_crypto_service, build_store
from .crypto import CryptoService, SystemClock
from .store import InMemoryRefreshTokenStore
from .adapters import RedisRefreshTokenStore
from .config import AuthSettings
from .contracts import IssuedTokens, RefreshTokenRecord
from .errors import (
    TokenIssuerError,
    ValidationError,
    InvalidTokenError,
    CryptoError,
    StorageError,
    OperationCancelledError,
)
from .deps import set_auth_service, get_auth_service
from .routes import router as auth_router
from .app import create_app

__all__ = [
    "AuthService",
    "build_auth_service",
    "build_crypto_service",
    "build_store",
    "CryptoService",
    "SystemClock",
    "InMemoryRefreshTokenStore",
    "RedisRefreshTokenStore",
    "AuthSettings",
    "IssuedTokens",
    "RefreshTokenRecord",
    "TokenIssuerError",
    "ValidationError",
    "InvalidTokenError",
    "CryptoError",
    "StorageError",
    "OperationCancelledError",
    "set_auth_service",
    "get_auth_service",
    "auth_router",
    "create_app",
]
