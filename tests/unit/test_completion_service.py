"""Tests for CompletionService."""

import asyncio
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.errors import GraphRecursionError

from novabot.core.exceptions import (
    CompletionProviderUnavailableError,
    CorporateApiUnavailableError,
    UpstreamTimeoutError,
)
from novabot.schemas.conversation_schema import MessageRecord, Role
from novabot.services.completion_service import CompletionService
from tests.conftest import make_llm_config, make_session


def record(role: Role, text: str, index: int) -> MessageRecord:
    return MessageRecord(
        id=f"msg_{index}",
        conversation_id="conv1",
        user_id="u1",
        role=role,
        text=text,
        created_at=f"2025-03-01T12:0{index}:00+00:00",
    )


@pytest.fixture
def agent() -> Iterator[MagicMock]:
    fake = MagicMock()
    fake.ainvoke = AsyncMock(
        return_value={
            "messages": [
                HumanMessage(content="¿Cuál es mi saldo?"),
                AIMessage(
                    content="",
                    tool_calls=[{"name": "get_account_balance", "args": {}, "id": "c1"}],
                ),
                ToolMessage(
                    content="Total disponible: $100.00",
                    name="get_account_balance",
                    tool_call_id="c1",
                ),
                AIMessage(content="Tienes $100.00 disponibles."),
            ]
        }
    )
    with patch(
        "novabot.services.completion_service.create_react_agent", return_value=fake
    ) as factory:
        fake.factory = factory
        yield fake


@pytest.fixture
def service(mock_llm: MagicMock) -> CompletionService:
    return CompletionService(mock_llm, make_llm_config(), "America/Mexico_City")


class TestComplete:
    """Running the agent for one turn."""

    async def test_returns_last_ai_message(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        reply = await service.complete(
            history=[], text="¿Cuál es mi saldo?", session=make_session(), tools=[]
        )
        assert reply == "Tienes $100.00 disponibles."

    async def test_history_precedes_new_message(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        history = [
            record(Role.USER, "hola", 1),
            record(Role.ASSISTANT, "¡Hola, Alice!", 2),
            record(Role.SYSTEM, "nota", 3),
        ]

        await service.complete(
            history=history, text="¿y mi saldo?", session=make_session(), tools=[]
        )

        payload = agent.ainvoke.await_args.args[0]
        messages = payload["messages"]
        assert [type(m) for m in messages] == [
            HumanMessage,
            AIMessage,
            SystemMessage,
            HumanMessage,
        ]
        assert messages[-1].content == "¿y mi saldo?"
        config = agent.ainvoke.await_args.kwargs["config"]
        assert config["recursion_limit"] == 8

    async def test_system_prompt_mentions_user(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        await service.complete(history=[], text="hola", session=make_session(), tools=[])

        prompt = agent.factory.call_args.kwargs["prompt"]
        assert isinstance(prompt, SystemMessage)
        assert "Alice Pérez López" in prompt.content
        assert "Esta es una conversación nueva." in prompt.content

    async def test_empty_reply_is_an_error(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        agent.ainvoke.return_value = {"messages": [AIMessage(content="")]}
        with pytest.raises(CompletionProviderUnavailableError):
            await service.complete(history=[], text="hola", session=make_session(), tools=[])

    async def test_whitespace_reply_is_an_error(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        agent.ainvoke.return_value = {"messages": [AIMessage(content="  \n\t ")]}
        with pytest.raises(CompletionProviderUnavailableError):
            await service.complete(history=[], text="hola", session=make_session(), tools=[])

    async def test_reply_is_stripped(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        agent.ainvoke.return_value = {"messages": [AIMessage(content="\n Hola \n")]}
        reply = await service.complete(
            history=[], text="hola", session=make_session(), tools=[]
        )
        assert reply == "Hola"

    async def test_content_blocks_are_joined(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        # Anthropic models answer with a list of typed blocks
        agent.ainvoke.return_value = {
            "messages": [
                AIMessage(
                    content=[
                        {"type": "text", "text": "Hola, "},
                        {"type": "tool_use", "id": "t1", "name": "x", "input": {}},
                        {"type": "text", "text": "soy Nova"},
                    ]
                )
            ]
        }

        reply = await service.complete(
            history=[], text="hola", session=make_session(), tools=[]
        )

        assert reply == "Hola, soy Nova"


class TestCompletionFailures:
    """Provider problems surface as upstream errors with a chat-safe message."""

    async def test_timeout(self, mock_llm: MagicMock, agent: MagicMock) -> None:
        async def slow(*args: Any, **kwargs: Any) -> dict:
            await asyncio.sleep(1)
            return {"messages": []}

        agent.ainvoke = slow
        service = CompletionService(
            mock_llm, make_llm_config(timeout_seconds=0.01), "America/Mexico_City"
        )

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await service.complete(history=[], text="hola", session=make_session(), tools=[])
        assert exc_info.value.service == "completion_provider"

    async def test_tool_loop_limit(self, service: CompletionService, agent: MagicMock) -> None:
        agent.ainvoke.side_effect = GraphRecursionError("too many steps")
        with pytest.raises(CompletionProviderUnavailableError):
            await service.complete(history=[], text="hola", session=make_session(), tools=[])

    async def test_provider_exception(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        agent.ainvoke.side_effect = RuntimeError("429 from provider")
        with pytest.raises(CompletionProviderUnavailableError) as exc_info:
            await service.complete(history=[], text="hola", session=make_session(), tools=[])
        assert "429" not in exc_info.value.user_message

    async def test_upstream_errors_pass_through(
        self, service: CompletionService, agent: MagicMock
    ) -> None:
        agent.ainvoke.side_effect = CorporateApiUnavailableError()
        with pytest.raises(CorporateApiUnavailableError):
            await service.complete(history=[], text="hola", session=make_session(), tools=[])
