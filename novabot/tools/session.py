"""Tools answering from the user's session and conversation."""

from collections.abc import Sequence
from datetime import datetime
from typing import Literal
from zoneinfo import ZoneInfo

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.tools import BaseTool, tool

from novabot.schemas.auth_schema import Session
from novabot.schemas.conversation_schema import MessageRecord, Role
from novabot.services.completion_service import message_text
from novabot.services.history_reader import HistoryReader
from novabot.services.summary_store import ConversationSummaryStore

logger = structlog.get_logger()

DAYS = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTH_NAMES = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)

SUMMARY_HISTORY_LIMIT = 50

AnalysisKind = Literal["resumen", "sentimientos", "temas", "patrones", "recomendaciones"]

ANALYST_PROMPT = (
    "Eres un analista experto en conversaciones corporativas. "
    "Proporciona análisis precisos, estructurados y útiles, en español."
)

ANALYSIS_INSTRUCTIONS: dict[str, str] = {
    "resumen": (
        "Proporciona un resumen ejecutivo: temas principales, conclusiones o "
        "decisiones alcanzadas, acciones pendientes y puntos clave."
    ),
    "sentimientos": (
        "Evalúa el tono general, el nivel de satisfacción del usuario, los "
        "puntos de fricción o confusión y cómo mejorar la experiencia."
    ),
    "temas": (
        "Identifica los temas y subtemas tratados, su frecuencia, cómo se "
        "relacionan y cuáles requieren seguimiento."
    ),
    "patrones": (
        "Analiza los patrones en las preguntas del usuario, la efectividad de "
        "las respuestas del asistente y dónde hizo falta aclarar algo."
    ),
    "recomendaciones": (
        "Recomienda productos o servicios de Nova relevantes para el usuario, "
        "acciones de seguimiento y mejoras en la atención."
    ),
}


def build_analysis_prompt(
    kind: str, history: Sequence[MessageRecord], session: Session
) -> str:
    """User prompt asking for one kind of analysis over ``history``."""
    transcript = "\n".join(f"[{r.role.value}] {r.text}" for r in history)
    instructions = ANALYSIS_INSTRUCTIONS.get(kind, ANALYSIS_INSTRUCTIONS["resumen"])
    return (
        f"Usuario: {session.profile.full_name} ({session.username or session.user_id})\n\n"
        f"Conversación:\n{transcript}\n\n{instructions}"
    )


def format_datetime(
    moment: datetime, fmt: Literal["full", "date", "time", "timestamp"] = "full"
) -> str:
    """Spanish rendering of ``moment`` independent of the process locale."""
    date_text = (
        f"{DAYS[moment.weekday()]}, {moment.day} de "
        f"{MONTH_NAMES[moment.month - 1]} de {moment.year}"
    )
    time_text = moment.strftime("%H:%M:%S")
    match fmt:
        case "date":
            return date_text
        case "time":
            return time_text
        case "timestamp":
            return moment.isoformat()
        case _:
            return f"{date_text}, {time_text} ({moment.tzname()})"


def build_session_tools(
    session: Session,
    conversation_id: str,
    timezone: str,
    history_reader: HistoryReader,
    summary_store: ConversationSummaryStore,
    llm: BaseChatModel | None = None,
) -> list[BaseTool]:
    """Date, profile and conversation tools bound to one turn.

    The conversation analysis tool is offered only when ``llm`` is given.
    """

    @tool
    def get_current_datetime(
        format: Literal["full", "date", "time", "timestamp"] = "full",
    ) -> str:
        """Get the current date and time in Mexico City.

        Args:
            format: "full", "date", "time" or "timestamp" (ISO 8601).
        """
        return format_datetime(datetime.now(ZoneInfo(timezone)), format)

    @tool
    def get_user_info(include_token: bool = False) -> str:
        """Get the logged-in user's corporate profile.

        Args:
            include_token: Show a short preview of the session token. Only
                when the user explicitly asks for it.
        """
        lines = [
            f"Nombre: {session.display_name}",
            f"Usuario: {session.username or session.user_id}",
            f"Apellido paterno: {session.surname1 or 'N/A'}",
            f"Apellido materno: {session.surname2 or 'N/A'}",
            f"Sesión iniciada: {session.authenticated_at.isoformat()}",
        ]
        if include_token:
            lines.append(f"Token: {session.token_preview}")
        return "\n".join(lines)

    @tool
    async def summarize_conversation() -> str:
        """Get statistics about the current conversation (message counts, dates)."""
        history = await history_reader.get_history(
            conversation_id, session.user_id, limit=SUMMARY_HISTORY_LIMIT
        )
        summary = await summary_store.get(conversation_id)
        if not history and summary is None:
            return "Esta conversación todavía no tiene mensajes guardados."

        counts = {role: 0 for role in Role}
        for record in history:
            counts[record.role] += 1
        lines = [
            f"Mensajes recientes revisados: {len(history)}",
            f"Del usuario: {counts[Role.USER]}",
            f"Del asistente: {counts[Role.ASSISTANT]}",
        ]
        if history:
            lines.append(f"Primer mensaje revisado: {history[0].created_at.isoformat()}")
            lines.append(f"Último mensaje: {history[-1].created_at.isoformat()}")
        if summary is not None:
            lines.append(f"Total de mensajes registrados: {summary.message_count}")
            lines.append(f"Conversación activa: {'sí' if summary.is_active else 'no'}")
        return "\n".join(lines)

    @tool
    async def analyze_conversation(kind: AnalysisKind = "resumen") -> str:
        """Analyse the whole current conversation in depth.

        Args:
            kind: "resumen" (executive summary), "sentimientos" (tone and
                satisfaction), "temas" (topics), "patrones" (communication
                patterns) or "recomendaciones" (follow-up recommendations).
        """
        history = await history_reader.get_history(
            conversation_id, session.user_id, limit=SUMMARY_HISTORY_LIMIT
        )
        if not history:
            return "No hay mensajes guardados en esta conversación para analizar."

        try:
            response = await llm.ainvoke(  # type: ignore[union-attr]
                [
                    SystemMessage(content=ANALYST_PROMPT),
                    HumanMessage(content=build_analysis_prompt(kind, history, session)),
                ]
            )
        except Exception:
            logger.exception(
                "Conversation analysis failed",
                conversation_id=conversation_id,
                kind=kind,
            )
            return "No fue posible analizar la conversación en este momento."

        analysis = message_text(response).strip()
        if not analysis:
            return "No fue posible analizar la conversación en este momento."
        return (
            f"Análisis de conversación: {kind.upper()}\n"
            f"Mensajes analizados: {len(history)}\n\n{analysis}"
        )

    tools: list[BaseTool] = [get_current_datetime, get_user_info, summarize_conversation]
    if llm is not None:
        tools.append(analyze_conversation)
    return tools
