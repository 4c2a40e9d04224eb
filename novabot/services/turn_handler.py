"""Per-turn orchestration: commands, authentication, completion, persistence."""

import time
from collections.abc import Callable

import structlog
from langchain_core.tools import BaseTool
from pydantic import ValidationError

from novabot.core.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    UpstreamUnavailableError,
)
from novabot.schemas.activity_schema import Activity, InboundTurn
from novabot.schemas.auth_schema import LoginCredentials, Session
from novabot.schemas.conversation_schema import Role
from novabot.services.auth_service import AuthService
from novabot.services.auth_state import ReconcilingStateSynchronizer
from novabot.services.cards import login_card, user_info_card
from novabot.services.channel import ChannelAdapter
from novabot.services.completion_service import CompletionService
from novabot.services.history_reader import HistoryReader
from novabot.services.message_store import MessageRecordStore

logger = structlog.get_logger()

ToolFactory = Callable[[Session, str], list[BaseTool]]

LOGIN_CARD_COMMANDS = frozenset({"login-card", "card-login"})
LOGOUT_COMMANDS = frozenset({"logout", "salir", "cerrar sesion", "cerrar sesión"})
INFO_COMMANDS = frozenset({"mi info", "info", "perfil", "my info", "profile"})
HELP_COMMANDS = frozenset({"ayuda", "help"})

WELCOME_COOLDOWN_SECONDS = 120

GENERIC_ERROR_MESSAGE = (
    "❌ **Error procesando mensaje**\n\n"
    "Ocurrió un error inesperado. Si el problema persiste, cierra sesión "
    "(`logout`) y vuelve a autenticarte."
)
AUTH_REQUIRED_MESSAGE = (
    "🔒 **Necesitas autenticarte primero**\n\n"
    "Usa la tarjeta de inicio de sesión o escribe: `login usuario:contraseña`"
)
LOGIN_USAGE_MESSAGE = (
    "Formato incorrecto. Escribe: `login usuario:contraseña`\n\n"
    "Ejemplo: `login 91004:mipassword`"
)
INITIAL_WELCOME_MESSAGE = (
    "🤖 **¡Bienvenido a Nova Bot!**\n\n"
    "Soy tu asistente corporativo con inteligencia artificial.\n\n"
    "🔐 Para comenzar, inicia sesión con tus credenciales corporativas."
)
HELP_MESSAGE = (
    "📚 **Ayuda - Nova Bot**\n\n"
    "Hola **{name}**, esto es lo que puedo hacer:\n\n"
    "🤖 **Chat:** escribe cualquier pregunta sobre Nova y sus servicios.\n"
    "💳 **Saldos y tasas:** pregúntame por tu saldo o las tasas de un año.\n"
    "📄 **Documentos:** busco en la documentación interna de Nova.\n\n"
    "👤 **Comandos:**\n"
    "• `mi info` - ver tu información corporativa\n"
    "• `logout` - cerrar sesión\n"
    "• `ayuda` - mostrar esta ayuda"
)


class TurnHandler:
    """Handles one inbound activity end to end.

    Every failure is caught here; the channel only ever receives
    user-safe text.
    """

    def __init__(
        self,
        auth_service: AuthService,
        synchronizer: ReconcilingStateSynchronizer,
        message_store: MessageRecordStore,
        history_reader: HistoryReader,
        completion_service: CompletionService,
        tool_factory: ToolFactory,
    ) -> None:
        self._auth_service = auth_service
        self._synchronizer = synchronizer
        self._message_store = message_store
        self._history_reader = history_reader
        self._completion_service = completion_service
        self._tool_factory = tool_factory
        self._welcomed: dict[str, float] = {}

    async def on_turn(self, activity: Activity, channel: ChannelAdapter) -> None:
        """Dispatch an inbound activity by type."""
        try:
            match activity.type:
                case "message":
                    await self._on_message(InboundTurn.from_activity(activity), channel)
                case "conversationUpdate":
                    await self._on_members_added(activity, channel)
                case _:
                    logger.debug("Ignoring activity", activity_type=activity.type)
        except Exception:
            logger.exception(
                "Unhandled error in turn",
                activity_type=activity.type,
                activity_id=activity.id,
            )
            await channel.send_text(GENERIC_ERROR_MESSAGE)

    # --- Messages ---

    async def _on_message(self, turn: InboundTurn, channel: ChannelAdapter) -> None:
        if not turn.user_id or not turn.conversation_id:
            logger.warning("Message without sender or conversation")
            return

        command = turn.text.lower()
        action = turn.value.get("action") if turn.value else None
        logger.info(
            "Message received",
            user_id=turn.user_id,
            conversation_id=turn.conversation_id,
            length=len(turn.text),
            action=action,
        )

        if action == "login":
            await self._login_from_card(turn, channel)
            return
        if command in LOGIN_CARD_COMMANDS:
            await channel.send_card(login_card())
            return
        if command.startswith("login "):
            await self._login_from_text(turn, channel)
            return
        if command in LOGOUT_COMMANDS:
            await self._logout(turn, channel)
            return

        session = await self._synchronizer.get_session(turn.user_id)
        if session is None:
            await channel.send_text(AUTH_REQUIRED_MESSAGE)
            await channel.send_card(login_card())
            return

        if command in INFO_COMMANDS:
            await channel.send_card(
                user_info_card(session), text="👤 **Tu información corporativa**"
            )
            return
        if command in HELP_COMMANDS or action == "help":
            await channel.send_text(HELP_MESSAGE.format(name=session.display_name))
            return
        if not turn.text:
            return

        await self._answer(turn, session, channel)

    async def _answer(
        self, turn: InboundTurn, session: Session, channel: ChannelAdapter
    ) -> None:
        await channel.send_typing()

        history = await self._history_reader.get_history(
            turn.conversation_id, turn.user_id
        )
        try:
            reply = await self._completion_service.complete(
                history=history,
                text=turn.text,
                session=session,
                tools=self._tool_factory(session, turn.conversation_id),
            )
        except UpstreamUnavailableError as e:
            logger.warning(
                "Turn aborted by upstream failure",
                service=e.service,
                upstream_status=e.upstream_status,
                code=e.code,
            )
            await channel.send_text(e.user_message)
            return

        display_name = turn.display_name or session.display_name
        stored = [
            await self._message_store.append(
                turn.conversation_id, turn.user_id, display_name, Role.USER, turn.text
            ),
            await self._message_store.append(
                turn.conversation_id, turn.user_id, display_name, Role.ASSISTANT, reply
            ),
        ]
        if not all(stored):
            logger.warning(
                "Turn answered without persistence",
                conversation_id=turn.conversation_id,
            )

        await channel.send_text(reply)

    # --- Authentication ---

    async def _login_from_text(self, turn: InboundTurn, channel: ChannelAdapter) -> None:
        credentials = LoginCredentials.from_text(turn.text)
        if credentials is None:
            await channel.send_text(LOGIN_USAGE_MESSAGE)
            return
        await self._login(turn, credentials, channel)

    async def _login_from_card(self, turn: InboundTurn, channel: ChannelAdapter) -> None:
        value = turn.value or {}
        try:
            credentials = LoginCredentials(
                username=str(value.get("username") or "").strip(),
                password=str(value.get("password") or ""),
            )
        except ValidationError:
            await channel.send_text("Completa tu usuario y contraseña.")
            await channel.send_card(login_card())
            return
        await self._login(turn, credentials, channel)

    async def _login(
        self, turn: InboundTurn, credentials: LoginCredentials, channel: ChannelAdapter
    ) -> None:
        try:
            session = await self._auth_service.login(turn.user_id, credentials)
        except AccountLockedError as e:
            await channel.send_text(f"🔒 {e.message}")
            return
        except InvalidCredentialsError as e:
            await channel.send_text(f"❌ **Autenticación fallida**\n\n{e.message}")
            await channel.send_card(login_card())
            return
        except UpstreamUnavailableError as e:
            logger.warning(
                "Login aborted by upstream failure",
                service=e.service,
                upstream_status=e.upstream_status,
            )
            await channel.send_text(f"⚠️ {e.user_message}")
            return

        await channel.send_text(
            f"✅ **¡Bienvenido, {session.display_name}!**\n\n"
            f"Has iniciado sesión como **{session.username}**. "
            "¿En qué puedo ayudarte hoy?"
        )

    async def _logout(self, turn: InboundTurn, channel: ChannelAdapter) -> None:
        session = await self._auth_service.logout(turn.user_id)
        self._welcomed.pop(turn.user_id, None)
        name = session.display_name if session else "Usuario"
        await channel.send_text(
            f"👋 **¡Hasta luego, {name}!**\n\n"
            "Tu sesión ha sido cerrada. Para volver a usar el bot tendrás "
            "que autenticarte nuevamente."
        )
        await channel.send_card(login_card())

    # --- Welcome ---

    async def _on_members_added(self, activity: Activity, channel: ChannelAdapter) -> None:
        bot_id = activity.recipient.id if activity.recipient else None
        for member in activity.members_added:
            if not member.id or member.id == bot_id:
                continue
            if self._recently_welcomed(member.id):
                continue

            session = await self._synchronizer.get_session(member.id)
            if session is not None:
                await channel.send_text(
                    f"👋 **¡Hola de nuevo, {session.display_name}!**\n\n"
                    f"Ya estás autenticado como **{session.username}**. "
                    "¿En qué puedo ayudarte hoy?"
                )
            else:
                await channel.send_text(INITIAL_WELCOME_MESSAGE)
                await channel.send_card(login_card())

    def _recently_welcomed(self, user_id: str) -> bool:
        now = time.monotonic()
        self._welcomed = {
            uid: at
            for uid, at in self._welcomed.items()
            if now - at < WELCOME_COOLDOWN_SECONDS
        }
        if user_id in self._welcomed:
            return True
        self._welcomed[user_id] = now
        return False
