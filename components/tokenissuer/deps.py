from typing import Optional

from .service import AuthService

# Process-wide provider; the app factory sets it, tests may swap it.
_auth_service: Optional[AuthService] = None


def set_auth_service(svc: Optional[AuthService]) -> None:
    global _auth_service
    _auth_service = svc


def get_auth_service() -> AuthService:
    """FastAPI dependency returning the configured AuthService."""
    if _auth_service is None:
        raise RuntimeError("AuthService is not configured; call set_auth_service() first")
    return _auth_service
