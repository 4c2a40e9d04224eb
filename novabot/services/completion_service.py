"""LangGraph ReAct agent wrapper producing one reply per turn."""

import asyncio
from collections.abc import Sequence
from datetime import datetime
from zoneinfo import ZoneInfo

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langgraph.errors import GraphRecursionError
from langgraph.prebuilt import create_react_agent

from novabot.core.exceptions import (
    CompletionProviderUnavailableError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from novabot.core.settings import LLMConfig
from novabot.schemas.auth_schema import Session
from novabot.schemas.conversation_schema import MessageRecord, Role

logger = structlog.get_logger()

SYSTEM_PROMPT_TEMPLATE = (
    "Tu nombre es Nova-AI, el asistente virtual de la institución financiera Nova.\n\n"
    "DIRECTRICES:\n"
    "- Responde únicamente en español.\n"
    "- Usa el historial de la conversación como referencia.\n"
    "- Para saldos y tasas de interés usa las herramientas especializadas.\n"
    "- Para procedimientos, productos o documentación técnica busca en los "
    "documentos internos antes de responder.\n"
    "- Si parte de tu respuesta no proviene de los documentos internos, "
    "indícalo en negritas.\n"
    "- Si no conoces la respuesta, dilo; no inventes datos.\n"
    "- Organiza las respuestas con listas y negritas cuando ayude.\n"
    "- Nunca muestres el token completo del usuario.\n\n"
    "Usuario autenticado: {user_name} ({username})\n"
    "Fecha y hora actual: {system_time}\n"
    "{history_note}"
)


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of content blocks."""
    if isinstance(message.content, str):
        return message.content
    parts = []
    for block in message.content:
        if isinstance(block, str):
            parts.append(block)
        elif block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


class CompletionService:
    """Runs the model with the turn's tools until it produces a final answer."""

    def __init__(self, llm: BaseChatModel, config: LLMConfig, timezone: str) -> None:
        self._llm = llm
        self._config = config
        self._timezone = timezone

    async def complete(
        self,
        history: Sequence[MessageRecord],
        text: str,
        session: Session,
        tools: list[BaseTool],
    ) -> str:
        """Return the assistant's reply to ``text``.

        Raises:
            CompletionProviderUnavailableError: the model failed, looped or
                answered with nothing.
            UpstreamTimeoutError: the whole turn ran past the timeout.
        """
        agent = create_react_agent(
            model=self._llm,
            tools=tools,
            prompt=self._build_system_prompt(session, len(history)),
        )
        messages = [*self._build_langchain_messages(history), HumanMessage(content=text)]
        # Each tool round is a model step plus a tool step
        config: RunnableConfig = {
            "recursion_limit": 2 * self._config.max_tool_rounds + 2,
        }

        try:
            response = await asyncio.wait_for(
                agent.ainvoke({"messages": messages}, config=config),
                timeout=self._config.timeout_seconds,
            )
        except TimeoutError as e:
            logger.warning("Completion timed out", user_id=session.user_id)
            raise UpstreamTimeoutError(
                CompletionProviderUnavailableError, self._config.timeout_seconds
            ) from e
        except GraphRecursionError as e:
            logger.warning("Tool loop exceeded its round limit", user_id=session.user_id)
            raise CompletionProviderUnavailableError(message="Tool loop limit") from e
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            logger.exception("Completion provider failed", user_id=session.user_id)
            raise CompletionProviderUnavailableError(message=str(e)) from e

        all_messages = response.get("messages", [])
        reply = self._extract_last_ai_message(all_messages)
        if not reply:
            raise CompletionProviderUnavailableError(message="Empty completion")

        logger.info(
            "Completion finished",
            user_id=session.user_id,
            history=len(history),
            tools_used=self._extract_tool_names(all_messages),
            reply_length=len(reply),
        )
        return reply

    def _build_system_prompt(self, session: Session, history_size: int) -> SystemMessage:
        """System prompt with user context, current time and history size."""
        now = datetime.now(tz=ZoneInfo(self._timezone))
        if history_size:
            history_note = (
                f"Tienes acceso a los últimos {history_size} mensajes de esta conversación."
            )
        else:
            history_note = "Esta es una conversación nueva."
        return SystemMessage(
            content=SYSTEM_PROMPT_TEMPLATE.format(
                user_name=session.profile.full_name,
                username=session.username or session.user_id,
                system_time=now.strftime(f"%d/%m/%Y %H:%M:%S ({self._timezone})"),
                history_note=history_note,
            )
        )

    @staticmethod
    def _build_langchain_messages(
        history: Sequence[MessageRecord],
    ) -> list[BaseMessage]:
        """Convert stored records to LangChain message objects."""
        messages: list[BaseMessage] = []
        for record in history:
            match record.role:
                case Role.USER:
                    messages.append(HumanMessage(content=record.text))
                case Role.ASSISTANT:
                    messages.append(AIMessage(content=record.text))
                case Role.SYSTEM:
                    messages.append(SystemMessage(content=record.text))
        return messages

    @staticmethod
    def _extract_last_ai_message(messages: Sequence[BaseMessage]) -> str:
        for message in reversed(messages):
            if isinstance(message, AIMessage):
                text = message_text(message).strip()
                if text:
                    return text
        return ""

    @staticmethod
    def _extract_tool_names(messages: Sequence[BaseMessage]) -> list[str]:
        return [
            message.name or ""
            for message in messages
            if isinstance(message, ToolMessage)
        ]
