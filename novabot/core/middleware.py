"""ASGI middleware validating Bot Framework channel tokens."""

import asyncio
import json
from typing import Any

import jwt
import structlog
from starlette.types import ASGIApp, Receive, Scope, Send

from novabot.core.exceptions import ChannelAuthenticationError
from novabot.core.settings import ChannelConfig

logger = structlog.get_logger()

PROTECTED_PATHS: set[str] = {"/api/messages"}


class ChannelAuthMiddleware:
    """Pure ASGI middleware checking the channel's JWT on the messaging endpoint.

    Without an app id (local emulator) every request passes through.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: ChannelConfig,
        jwks_client: jwt.PyJWKClient | None = None,
    ) -> None:
        self.app = app
        self._config = config
        self._jwks_client = jwks_client

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self._config.is_configured:
            await self.app(scope, receive, send)
            return

        path = scope["path"].rstrip("/") or "/"
        if scope.get("method", "") == "OPTIONS" or path not in PROTECTED_PATHS:
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        auth_header = headers.get(b"authorization", b"").decode()
        if not auth_header.startswith("Bearer "):
            await self._send_error(send, 401, "MISSING_TOKEN", "Authorization header required")
            return

        try:
            claims = await self._decode(auth_header[7:])
        except jwt.ExpiredSignatureError:
            await self._send_error(send, 401, "TOKEN_EXPIRED", "Token has expired")
            return
        except jwt.PyJWKClientError:
            logger.exception("Channel signing keys unavailable")
            await self._reject(send, ChannelAuthenticationError("Signing keys unavailable"))
            return
        except jwt.InvalidTokenError as e:
            logger.warning("Rejected channel token", error=str(e))
            await self._reject(send, ChannelAuthenticationError())
            return

        scope.setdefault("state", {})
        scope["state"]["channel_claims"] = claims
        await self.app(scope, receive, send)

    async def _decode(self, token: str) -> dict[str, Any]:
        if self._jwks_client is None:
            self._jwks_client = jwt.PyJWKClient(self._config.openid_keys_url)
        # PyJWKClient fetches keys synchronously
        signing_key = await asyncio.to_thread(
            self._jwks_client.get_signing_key_from_jwt, token
        )
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self._config.app_id,
            issuer=self._config.token_issuer,
        )

    async def _reject(self, send: Send, error: ChannelAuthenticationError) -> None:
        await self._send_error(send, error.status_code, error.code, error.message)

    @staticmethod
    async def _send_error(send: Send, status: int, code: str, message: str) -> None:
        """Send a JSON error response directly."""
        body = json.dumps({"status": status, "message": message, "code": code}).encode()

        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
