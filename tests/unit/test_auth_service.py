"""Tests for AuthService."""

from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from novabot.core.exceptions import (
    AccountLockedError,
    CredentialVerifierUnavailableError,
    InvalidCredentialsError,
)
from novabot.schemas.auth_schema import LoginCredentials, VerifiedIdentity
from novabot.services.auth_service import AuthService
from novabot.services.auth_state import ReconcilingStateSynchronizer
from novabot.services.credential_verifier import CredentialVerifier
from novabot.services.token_service import TokenService
from tests.conftest import make_profile

CREDENTIALS = LoginCredentials(username="91004", password="secreto")


@pytest.fixture
def verifier() -> MagicMock:
    mock = MagicMock(spec=CredentialVerifier)
    mock.verify = AsyncMock(
        return_value=VerifiedIdentity(profile=make_profile(), bearer_token="tok-abc")
    )
    return mock


@pytest.fixture
def token_service(fake_redis: fakeredis.aioredis.FakeRedis) -> TokenService:
    return TokenService(fake_redis, max_attempts=2, lockout_seconds=300)


@pytest.fixture
def auth_service(
    verifier: MagicMock,
    synchronizer: ReconcilingStateSynchronizer,
    token_service: TokenService,
) -> AuthService:
    return AuthService(verifier, synchronizer, token_service)


class TestLogin:
    """Tests for login."""

    async def test_success_creates_session(
        self, auth_service: AuthService, synchronizer: ReconcilingStateSynchronizer
    ) -> None:
        session = await auth_service.login("u1", CREDENTIALS)

        assert session.display_name == "Alice"
        assert session.bearer_token == "tok-abc"
        assert await synchronizer.is_authenticated("u1") is True

    async def test_invalid_credentials_count_towards_lockout(
        self,
        auth_service: AuthService,
        verifier: MagicMock,
        token_service: TokenService,
    ) -> None:
        verifier.verify.side_effect = InvalidCredentialsError()

        for _ in range(2):
            with pytest.raises(InvalidCredentialsError):
                await auth_service.login("u1", CREDENTIALS)

        assert await token_service.get_login_attempts("91004") == 2
        with pytest.raises(AccountLockedError):
            await auth_service.login("u1", CREDENTIALS)
        assert verifier.verify.await_count == 2

    async def test_success_resets_failures(
        self,
        auth_service: AuthService,
        verifier: MagicMock,
        token_service: TokenService,
    ) -> None:
        await token_service.record_failed_login("91004")

        await auth_service.login("u1", CREDENTIALS)

        assert await token_service.get_login_attempts("91004") == 0

    async def test_verifier_outage_is_not_a_failed_attempt(
        self,
        auth_service: AuthService,
        verifier: MagicMock,
        token_service: TokenService,
    ) -> None:
        verifier.verify.side_effect = CredentialVerifierUnavailableError()

        with pytest.raises(CredentialVerifierUnavailableError):
            await auth_service.login("u1", CREDENTIALS)

        assert await token_service.get_login_attempts("91004") == 0

    async def test_lockout_bookkeeping_tolerates_redis_outage(
        self, verifier: MagicMock, synchronizer: ReconcilingStateSynchronizer
    ) -> None:
        broken = MagicMock(spec=TokenService)
        broken.is_locked = AsyncMock(side_effect=RedisConnectionError("down"))
        broken.reset_login_attempts = AsyncMock(side_effect=RedisConnectionError("down"))
        service = AuthService(verifier, synchronizer, broken)

        session = await service.login("u1", CREDENTIALS)

        assert session.user_id == "u1"


class TestLogout:
    """Tests for logout."""

    async def test_logout_returns_previous_session(
        self, auth_service: AuthService, synchronizer: ReconcilingStateSynchronizer
    ) -> None:
        await auth_service.login("u1", CREDENTIALS)

        previous = await auth_service.logout("u1")

        assert previous is not None
        assert previous.display_name == "Alice"
        assert await synchronizer.is_authenticated("u1") is False

    async def test_logout_when_not_logged_in(self, auth_service: AuthService) -> None:
        assert await auth_service.logout("u1") is None
