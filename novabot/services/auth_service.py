"""Login and logout orchestration."""

import structlog
from redis.exceptions import RedisError

from novabot.core.exceptions import AccountLockedError, InvalidCredentialsError
from novabot.schemas.auth_schema import LoginCredentials, Session
from novabot.services.auth_state import ReconcilingStateSynchronizer
from novabot.services.credential_verifier import CredentialVerifier
from novabot.services.token_service import TokenService

logger = structlog.get_logger()


class AuthService:
    """Verifies credentials, enforces the lockout and records the session."""

    def __init__(
        self,
        verifier: CredentialVerifier,
        synchronizer: ReconcilingStateSynchronizer,
        token_service: TokenService,
    ) -> None:
        self._verifier = verifier
        self._synchronizer = synchronizer
        self._token_service = token_service

    async def login(self, user_id: str, credentials: LoginCredentials) -> Session:
        """Authenticate ``user_id`` with corporate credentials.

        Raises:
            AccountLockedError: too many recent failures for this username.
            InvalidCredentialsError: the identity API rejected the credentials.
            UpstreamUnavailableError: the identity API could not be reached.
        """
        if await self._is_locked(credentials.username):
            logger.warning("Login blocked by lockout", username=credentials.username)
            raise AccountLockedError

        try:
            identity = await self._verifier.verify(credentials)
        except InvalidCredentialsError:
            await self._record_failure(credentials.username)
            raise

        await self._reset_failures(credentials.username)
        return await self._synchronizer.login(
            user_id, identity.profile, identity.bearer_token
        )

    async def logout(self, user_id: str) -> Session | None:
        """End the session; returns the session that was active, if any."""
        session = await self._synchronizer.get_session(user_id)
        await self._synchronizer.logout(user_id)
        return session

    # --- Lockout bookkeeping (best effort when Redis is down) ---

    async def _is_locked(self, username: str) -> bool:
        try:
            return await self._token_service.is_locked(username)
        except (RedisError, OSError):
            logger.exception("Lockout check failed", username=username)
            return False

    async def _record_failure(self, username: str) -> None:
        try:
            attempts = await self._token_service.record_failed_login(username)
        except (RedisError, OSError):
            logger.exception("Failed to record login failure", username=username)
            return
        logger.info("Login failed", username=username, attempts=attempts)

    async def _reset_failures(self, username: str) -> None:
        try:
            await self._token_service.reset_login_attempts(username)
        except (RedisError, OSError):
            logger.exception("Failed to reset login attempts", username=username)
