"""Login attempt tracking and corporate token inspection."""

from typing import Any

import jwt
import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

LOGIN_ATTEMPTS_PREFIX = "login_attempts:"

# Claims that may carry the employee number, in lookup order
NUM_RI_CLAIMS = (
    "NumRI",
    "numRI",
    "numri",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier",
    "sub",
    "user_id",
    "employee_id",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name",
    "name",
    "preferred_username",
)


class TokenService:
    """Redis-backed failed-login counter plus helpers for corporate tokens."""

    def __init__(
        self,
        redis_client: redis.Redis,  # type: ignore[type-arg]
        max_attempts: int = 5,
        lockout_seconds: int = 300,
    ) -> None:
        self._redis = redis_client
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds

    # --- Login attempts ---

    async def record_failed_login(self, username: str) -> int:
        """Record a failed login attempt, return total count."""
        key = f"{LOGIN_ATTEMPTS_PREFIX}{username.lower()}"
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self.lockout_seconds)
        return int(count)

    async def reset_login_attempts(self, username: str) -> None:
        """Clear failed login attempts after successful login."""
        await self._redis.delete(f"{LOGIN_ATTEMPTS_PREFIX}{username.lower()}")

    async def get_login_attempts(self, username: str) -> int:
        """Get current failed login attempt count."""
        result = await self._redis.get(f"{LOGIN_ATTEMPTS_PREFIX}{username.lower()}")
        return int(result) if result else 0

    async def is_locked(self, username: str) -> bool:
        return await self.get_login_attempts(username) >= self.max_attempts

    # --- Corporate token claims ---

    @staticmethod
    def read_claims(token: str) -> dict[str, Any]:
        """Decode a corporate bearer token's payload without verifying it.

        The token was issued to this process by the identity API; its claims
        are only read for routing values such as the employee number.
        """
        try:
            return jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
                algorithms=["HS256", "RS256"],
            )
        except jwt.InvalidTokenError:
            logger.debug("Corporate token is not a readable JWT")
            return {}

    @classmethod
    def extract_num_ri(cls, token: str, default: str) -> str:
        """Employee number from the token's claims, or ``default``."""
        claims = cls.read_claims(token.removeprefix("Bearer ").strip())
        for name in NUM_RI_CLAIMS:
            value = str(claims.get(name, "")).strip()
            if value.isdigit():
                return str(int(value))
        return default
