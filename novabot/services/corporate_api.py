"""Corporate API client (balances, interest rates)."""

from typing import Any

import httpx
import structlog

from novabot.core.exceptions import CorporateApiUnavailableError, UpstreamTimeoutError
from novabot.core.settings import IdentityConfig
from novabot.schemas.auth_schema import Session
from novabot.services.token_service import TokenService

logger = structlog.get_logger()


class CorporateApiClient:
    """Calls the corporate API on behalf of a logged-in user."""

    def __init__(
        self,
        config: IdentityConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.api_timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_balance(self, session: Session, system_type: str = "") -> Any:
        """Savings balances of the session's member number."""
        member = session.username or session.user_id
        return await self._post(
            self._config.balance_url,
            session,
            {
                "usuarioActual": {"CveUsuario": member},
                "data": {"NumSocio": member, "TipoSist": system_type},
            },
        )

    async def get_interest_rates(self, session: Session, year: int) -> Any:
        """Monthly interest rates for ``year``."""
        num_ri = TokenService.extract_num_ri(
            session.bearer_token, self._config.default_num_ri
        )
        return await self._post(
            self._config.interest_rates_url,
            session,
            {
                "usuarioActual": {"CveUsuario": session.username or session.user_id},
                "data": {"NumRI": num_ri, "Anio": year},
            },
        )

    async def call(
        self,
        endpoint: str,
        session: Session,
        method: str = "GET",
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Generic call to an endpoint relative to the API base URL."""
        url = (
            endpoint
            if endpoint.startswith("http")
            else f"{self._config.api_base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        )
        if method.upper() == "POST":
            return await self._post(url, session, params or {})
        return await self._send("GET", url, session, params=params)

    async def _post(self, url: str, session: Session, body: dict[str, Any]) -> Any:
        return await self._send("POST", url, session, json=body)

    async def _send(
        self,
        method: str,
        url: str,
        session: Session,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                url,
                headers={
                    "Authorization": f"Bearer {session.bearer_token}",
                    "Accept": "application/json",
                },
                timeout=self._config.api_timeout_seconds,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                CorporateApiUnavailableError, self._config.api_timeout_seconds
            ) from e
        except httpx.HTTPError as e:
            logger.error("Corporate API unreachable", url=url, error=repr(e))
            raise CorporateApiUnavailableError(message=str(e)) from e

        if not response.is_success:
            logger.warning(
                "Corporate API returned an error status",
                url=url,
                status=response.status_code,
                user_id=session.user_id,
            )
            raise CorporateApiUnavailableError(
                message="Corporate API error status",
                upstream_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise CorporateApiUnavailableError(
                message="Unreadable corporate API response",
                upstream_status=response.status_code,
            ) from e
