"""Corporate API tools (balances, interest rates, generic calls)."""

import json
import unicodedata
from typing import Any, Literal

from langchain_core.tools import BaseTool, tool

from novabot.core.exceptions import UpstreamUnavailableError
from novabot.schemas.auth_schema import Session
from novabot.services.corporate_api import CorporateApiClient

EXPIRED_TOKEN_MESSAGE = (
    "Tu sesión con el sistema corporativo puede haber expirado. "
    "Escribe `logout` e inicia sesión nuevamente."
)

MAX_API_RESPONSE_CHARS = 4000

MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

RATE_COLUMNS = (
    ("Mes", "Mes"),
    ("Vista", "vista"),
    ("Fijo 1m", "fijo1"),
    ("Fijo 3m", "fijo3"),
    ("Fijo 6m", "fijo6"),
    ("FAP", "FAP"),
    ("Nov", "Nov"),
    ("Préstamos", "Prestamos"),
)


def _month_order(row: dict[str, Any]) -> int:
    name = unicodedata.normalize("NFD", str(row.get("Mes") or "").lower())
    name = "".join(ch for ch in name if unicodedata.category(ch) != "Mn").strip()
    return MONTHS.get(name, 99)


def _percent(value: Any) -> str:
    if value in (None, ""):
        return "—"
    try:
        return f"{float(value):g}%"
    except (TypeError, ValueError):
        return str(value)


def _money(value: float) -> str:
    return f"${value:,.2f}"


def _amount(account: dict[str, Any], *keys: str) -> float:
    for key in keys:
        if account.get(key) not in (None, ""):
            try:
                return float(account[key])
            except (TypeError, ValueError):
                continue
    return 0.0


def format_interest_rates(data: Any, year: int) -> str:
    """Monospaced month-by-month rate table."""
    rows = data.get("info") if isinstance(data, dict) else None
    if not isinstance(rows, list) or not rows:
        return f"No hay tasas registradas para {year}."

    table = [[header for header, _ in RATE_COLUMNS]]
    for row in sorted(rows, key=_month_order):
        table.append(
            [str(row.get("Mes") or "")]
            + [_percent(row.get(key)) for _, key in RATE_COLUMNS[1:]]
        )

    widths = [max(len(line[col]) for line in table) for col in range(len(RATE_COLUMNS))]
    lines = [
        " | ".join(cell.ljust(widths[col]) for col, cell in enumerate(line))
        for line in table
    ]
    lines.insert(1, "-+-".join("-" * width for width in widths))
    return f"Tasas de interés {year}\n```text\n" + "\n".join(lines) + "\n```"


def format_balance(data: Any, session: Session) -> str:
    """Balance summary with per-account detail."""
    accounts: list[dict[str, Any]] = []
    if isinstance(data, list):
        accounts = data
    elif isinstance(data, dict):
        for key in ("info", "data", "saldos"):
            if isinstance(data.get(key), list):
                accounts = data[key]
                break

    if not accounts:
        return "No se encontraron cuentas de ahorro activas."

    available_keys = ("saldoDisponible", "disponible", "SaldoDisponible")
    held_keys = ("saldoRetenido", "retenido", "SaldoRetenido")
    total_available = sum(_amount(account, *available_keys) for account in accounts)
    total_held = sum(_amount(account, *held_keys) for account in accounts)

    lines = [
        f"Saldo de {session.display_name} (socio {session.username or session.user_id})",
        f"Total disponible: {_money(total_available)}",
        f"Total retenido: {_money(total_held)}",
        f"Total general: {_money(total_available + total_held)}",
        "",
    ]
    for index, account in enumerate(accounts, start=1):
        kind = (
            account.get("tipoCuenta")
            or account.get("tipo")
            or account.get("TipoCuenta")
            or f"Cuenta {index}"
        )
        available = _amount(account, *available_keys)
        held = _amount(account, *held_keys)
        lines.append(
            f"- {kind}: disponible {_money(available)}, retenido {_money(held)}"
        )
    return "\n".join(lines)


def format_api_response(data: Any) -> str:
    """Pretty JSON of a raw API response, cut to fit the model's context."""
    text = json.dumps(data, ensure_ascii=False, indent=2, default=str)
    if len(text) > MAX_API_RESPONSE_CHARS:
        text = text[:MAX_API_RESPONSE_CHARS] + "\n... (respuesta truncada)"
    return f"Respuesta de la API:\n```json\n{text}\n```"


def _failure_message(error: UpstreamUnavailableError) -> str:
    if error.upstream_status == 401:
        return EXPIRED_TOKEN_MESSAGE
    return error.user_message


def build_corporate_tools(api: CorporateApiClient, session: Session) -> list[BaseTool]:
    """Corporate API tools acting with ``session``'s bearer token."""

    @tool
    async def get_account_balance(system_type: str = "") -> str:
        """Look up the current user's savings account balances.

        Use this tool when the user asks about their balance, savings or
        available money.

        Args:
            system_type: Optional account system filter; leave empty for all.
        """
        try:
            data = await api.get_balance(session, system_type)
        except UpstreamUnavailableError as e:
            return _failure_message(e)
        return format_balance(data, session)

    @tool
    async def get_interest_rates(year: int) -> str:
        """Look up Nova's monthly interest rates for a given year.

        Args:
            year: Four-digit year, e.g. 2025.
        """
        if not 2000 <= year <= 2100:
            return "Indica un año válido entre 2000 y 2100."
        try:
            data = await api.get_interest_rates(session, year)
        except UpstreamUnavailableError as e:
            return _failure_message(e)
        return format_interest_rates(data, year)

    @tool
    async def call_corporate_api(
        endpoint: str,
        method: Literal["GET", "POST"] = "GET",
        params: dict[str, Any] | None = None,
    ) -> str:
        """Call any Nova corporate API endpoint with the user's session.

        Use this only when no specialised tool covers the request.

        Args:
            endpoint: Path relative to the corporate API base URL, or a full URL.
            method: "GET" or "POST".
            params: Query parameters for GET, JSON body for POST.
        """
        try:
            data = await api.call(endpoint, session, method=method, params=params)
        except UpstreamUnavailableError as e:
            return _failure_message(e)
        return format_api_response(data)

    return [get_account_balance, get_interest_rates, call_corporate_api]
