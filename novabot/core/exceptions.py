"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Validation (422) ---


class RecordValidationError(AppException):
    """Malformed input to a conversation store operation. Never retried."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message=message,
            code="RECORD_VALIDATION_ERROR",
            status_code=422,
        )


# --- Authentication (401) ---


class InvalidCredentialsError(AppException):
    """The credential verifier rejected the username or password."""

    def __init__(self, message: str = "Usuario o contraseña incorrectos") -> None:
        super().__init__(
            message=message,
            code="INVALID_CREDENTIALS",
            status_code=401,
        )


class ChannelAuthenticationError(AppException):
    """Inbound channel request carried no valid Bot Framework token."""

    def __init__(self, message: str = "Invalid channel token") -> None:
        super().__init__(
            message=message,
            code="CHANNEL_AUTHENTICATION_ERROR",
            status_code=401,
        )


# --- Conflict (409) ---


class ConflictRetryExhaustedError(AppException):
    """Conditional summary write kept losing the race."""

    def __init__(self, conversation_id: str, attempts: int) -> None:
        self.conversation_id = conversation_id
        self.attempts = attempts
        super().__init__(
            message=(
                f"Summary update for {conversation_id} gave up "
                f"after {attempts} attempts"
            ),
            code="CONFLICT_RETRY_EXHAUSTED",
            status_code=409,
        )


# --- Rate Limit (429) ---


class AccountLockedError(AppException):
    """Too many failed login attempts."""

    def __init__(self) -> None:
        super().__init__(
            message=(
                "Demasiados intentos fallidos de inicio de sesión. "
                "Intenta de nuevo en unos minutos."
            ),
            code="ACCOUNT_LOCKED",
            status_code=429,
        )


# --- Upstream (502 / 504) ---


class UpstreamUnavailableError(AppException):
    """External collaborator unreachable or answering with an error.

    ``user_message`` is safe to show in the chat. ``upstream_status`` is
    only ever logged.
    """

    service = "upstream"
    user_message = "El servicio no está disponible en este momento, intenta de nuevo."

    def __init__(
        self,
        message: str = "Upstream service unavailable",
        upstream_status: int | None = None,
        status_code: int = 502,
    ) -> None:
        self.upstream_status = upstream_status
        super().__init__(
            message=message,
            code="UPSTREAM_UNAVAILABLE",
            status_code=status_code,
        )


class CredentialVerifierUnavailableError(UpstreamUnavailableError):
    """Identity API unreachable or failing."""

    service = "credential_verifier"
    user_message = (
        "El servicio de autenticación no está disponible, intenta de nuevo "
        "en unos momentos."
    )


class CompletionProviderUnavailableError(UpstreamUnavailableError):
    """LLM backend unreachable or failing."""

    service = "completion_provider"
    user_message = (
        "Lo siento, no pude generar una respuesta en este momento. "
        "Intenta nuevamente."
    )


class DocumentIndexUnavailableError(UpstreamUnavailableError):
    """Search backend unreachable or failing."""

    service = "document_index"
    user_message = "La búsqueda de documentos no está disponible en este momento."


class CorporateApiUnavailableError(UpstreamUnavailableError):
    """Corporate API (balances, rates) unreachable or failing."""

    service = "corporate_api"
    user_message = "El sistema corporativo no respondió, intenta de nuevo más tarde."


class UpstreamTimeoutError(UpstreamUnavailableError):
    """An outbound call ran past its timeout.

    Carries the service and user message of the collaborator that timed out.
    """

    def __init__(self, source: type[UpstreamUnavailableError], timeout: float) -> None:
        self.service = source.service
        self.user_message = source.user_message
        self.timeout = timeout
        super().__init__(
            message=f"{source.service} timed out after {timeout}s",
            status_code=504,
        )
        self.code = "UPSTREAM_TIMEOUT"


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": exc.status_code,
            "message": exc.message,
            "code": exc.code,
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors in the common error shape."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "status": 422,
            "message": f"{location}: {message}" if location else message,
            "code": "VALIDATION_ERROR",
        },
    )
