"""Corporate identity API client."""

from typing import Any, NoReturn

import httpx
import structlog

from novabot.core.exceptions import (
    CredentialVerifierUnavailableError,
    InvalidCredentialsError,
    UpstreamTimeoutError,
)
from novabot.core.logging import token_preview
from novabot.core.settings import IdentityConfig
from novabot.schemas.auth_schema import LoginCredentials, UserProfile, VerifiedIdentity

logger = structlog.get_logger()


class CredentialVerifier:
    """Checks a username and password against the identity API.

    The API answers in one of two shapes: a flat object with
    ``displayName``/``bearerToken``, or the older ``info`` list whose first
    entry carries ``Nombre``, ``Token`` and a numeric ``EsValido`` flag.
    """

    def __init__(
        self,
        config: IdentityConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            timeout=config.verifier_timeout_seconds
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def verify(self, credentials: LoginCredentials) -> VerifiedIdentity:
        """Verify credentials.

        Raises:
            InvalidCredentialsError: the API rejected the credentials.
            CredentialVerifierUnavailableError: transport failure, non-2xx
                status or an unreadable body.
            UpstreamTimeoutError: no answer within the configured timeout.
        """
        try:
            response = await self._client.post(
                self._config.verifier_url,
                json={
                    "username": credentials.username,
                    "password": credentials.password,
                },
                headers={"Accept": "application/json"},
                timeout=self._config.verifier_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.warning("Credential verifier timed out", username=credentials.username)
            raise UpstreamTimeoutError(
                CredentialVerifierUnavailableError,
                self._config.verifier_timeout_seconds,
            ) from e
        except httpx.HTTPError as e:
            logger.error("Credential verifier unreachable", error=repr(e))
            raise CredentialVerifierUnavailableError(message=str(e)) from e

        if not response.is_success:
            logger.error(
                "Credential verifier returned an error status",
                status=response.status_code,
                username=credentials.username,
            )
            raise CredentialVerifierUnavailableError(
                message="Credential verifier error status",
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Credential verifier returned invalid JSON")
            raise CredentialVerifierUnavailableError(
                message="Unreadable verifier response",
                upstream_status=response.status_code,
            ) from e

        identity = self.parse_response(data, credentials.username)
        logger.info(
            "Credentials verified",
            username=credentials.username,
            token=token_preview(identity.bearer_token),
        )
        return identity

    def parse_response(self, data: Any, username: str) -> VerifiedIdentity:
        """Turn a 2xx verifier body into an identity or raise InvalidCredentialsError."""
        if not isinstance(data, dict):
            raise CredentialVerifierUnavailableError(message="Unexpected verifier body")

        info = data.get("info")
        if isinstance(info, list) and info and isinstance(info[0], dict):
            return self._parse_legacy(info[0], username)

        token = data.get("bearerToken")
        display_name = data.get("displayName")
        if token and display_name:
            return VerifiedIdentity(
                profile=UserProfile(
                    display_name=display_name,
                    surname1=data.get("surname1"),
                    surname2=data.get("surname2"),
                    username=username,
                ),
                bearer_token=token,
                message=data.get("message"),
            )

        self._reject(data.get("message"), username)

    def _parse_legacy(self, entry: dict[str, Any], username: str) -> VerifiedIdentity:
        flag = entry.get("EsValido")
        token = entry.get("Token")
        try:
            is_valid = flag is not None and int(flag) == self._config.valid_flag_value
        except (TypeError, ValueError):
            is_valid = False

        if not is_valid or not token:
            self._reject(entry.get("Mensaje"), username)

        return VerifiedIdentity(
            profile=UserProfile(
                display_name=entry.get("Nombre") or username,
                surname1=entry.get("Paterno"),
                surname2=entry.get("Materno"),
                username=username,
            ),
            bearer_token=token,
            message=entry.get("Mensaje"),
        )

    @staticmethod
    def _reject(message: str | None, username: str) -> NoReturn:
        logger.info("Credentials rejected", username=username)
        if message:
            raise InvalidCredentialsError(message=message)
        raise InvalidCredentialsError()
