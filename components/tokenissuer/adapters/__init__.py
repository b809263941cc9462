from .redis_store import RedisRefreshTokenStore

__all__ = ["RedisRefreshTokenStore"]
