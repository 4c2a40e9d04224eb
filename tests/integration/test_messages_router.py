"""Integration tests for the messaging endpoint."""

import json
from unittest.mock import MagicMock

import httpx
from httpx import AsyncClient

from novabot.dependencies import BotServices
from novabot.services.channel import ConnectorClient
from novabot.services.turn_handler import AUTH_REQUIRED_MESSAGE
from tests.conftest import make_activity, make_profile


class TestExpectReplies:
    """Replies come back in the response body."""

    async def test_unauthenticated_user_gets_login_prompt(
        self, async_client: AsyncClient
    ) -> None:
        resp = await async_client.post(
            "/api/messages",
            json=make_activity(text="hola", deliveryMode="expectReplies"),
        )

        assert resp.status_code == 200
        activities = resp.json()["activities"]
        assert activities[0]["text"] == AUTH_REQUIRED_MESSAGE
        assert activities[0]["recipient"]["id"] == "u1"
        assert activities[1]["attachments"][0]["content"]["type"] == "AdaptiveCard"

    async def test_question_is_answered_and_stored(
        self,
        async_client: AsyncClient,
        services: BotServices,
        fake_agent: MagicMock,
    ) -> None:
        await services.synchronizer.login("u1", make_profile(), "tok-abc")

        resp = await async_client.post(
            "/api/messages",
            json=make_activity(text="¿Qué es FAP?", deliveryMode="expectReplies"),
        )

        assert resp.status_code == 200
        activities = resp.json()["activities"]
        assert [a["type"] for a in activities] == ["typing", "message"]
        assert activities[1]["text"] == "Respuesta de prueba"
        history = await services.history_reader.get_history("conv1", "u1", 10)
        assert [r.text for r in history] == ["¿Qué es FAP?", "Respuesta de prueba"]

    async def test_tools_are_offered_to_the_agent(
        self,
        async_client: AsyncClient,
        services: BotServices,
        fake_agent: MagicMock,
    ) -> None:
        from novabot.services import completion_service

        await services.synchronizer.login("u1", make_profile(), "tok-abc")

        await async_client.post(
            "/api/messages",
            json=make_activity(text="¿qué hora es?", deliveryMode="expectReplies"),
        )

        tools = completion_service.create_react_agent.call_args.kwargs["tools"]
        names = {t.name for t in tools}
        assert {
            "get_current_datetime",
            "get_account_balance",
            "get_interest_rates",
            "call_corporate_api",
            "analyze_conversation",
        } <= names
        # No search endpoint configured
        assert "search_documents" not in names


class TestConnectorDelivery:
    """Without expectReplies the replies go to the connector service."""

    async def test_replies_posted_to_service_url(
        self, async_client: AsyncClient, services: BotServices
    ) -> None:
        posted: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            posted.append(request)
            return httpx.Response(200, json={"id": "r1"})

        await services.connector.aclose()
        services.connector = ConnectorClient(
            services.settings.channel,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        resp = await async_client.post("/api/messages", json=make_activity(text="hola"))

        assert resp.status_code == 200
        assert resp.content == b""
        assert len(posted) == 2
        assert str(posted[0].url) == (
            "https://smba.example.net/amer/v3/conversations/conv1/activities/act-1"
        )
        assert json.loads(posted[0].content)["text"] == AUTH_REQUIRED_MESSAGE


class TestValidation:
    async def test_malformed_activity(self, async_client: AsyncClient) -> None:
        resp = await async_client.post("/api/messages", json={"text": "sin tipo"})

        assert resp.status_code == 422
        data = resp.json()
        assert data["status"] == 422
        assert data["code"] == "VALIDATION_ERROR"
        assert "type" in data["message"]

    async def test_unknown_activity_type_is_ignored(self, async_client: AsyncClient) -> None:
        resp = await async_client.post(
            "/api/messages",
            json=make_activity(type="typing", deliveryMode="expectReplies"),
        )

        assert resp.status_code == 200
        assert resp.json() == {"activities": []}
