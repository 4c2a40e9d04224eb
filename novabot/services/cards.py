"""Adaptive cards sent to Teams."""

from typing import Any

from novabot.schemas.auth_schema import Session

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
ADAPTIVE_CARD_VERSION = "1.3"


def as_attachment(card: dict[str, Any]) -> dict[str, Any]:
    """Wrap a card body as an activity attachment."""
    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": card}


def login_card() -> dict[str, Any]:
    """Username/password form that submits ``{"action": "login", ...}``."""
    return {
        "type": "AdaptiveCard",
        "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
        "version": ADAPTIVE_CARD_VERSION,
        "body": [
            {
                "type": "TextBlock",
                "text": "Iniciar sesión en Nova",
                "size": "Large",
                "weight": "Bolder",
            },
            {
                "type": "TextBlock",
                "text": "Ingresa tus credenciales corporativas.",
                "wrap": True,
            },
            {
                "type": "Input.Text",
                "id": "username",
                "label": "Usuario",
                "placeholder": "Número de usuario",
                "isRequired": True,
            },
            {
                "type": "Input.Text",
                "id": "password",
                "label": "Contraseña",
                "placeholder": "Contraseña",
                "style": "Password",
                "isRequired": True,
            },
        ],
        "actions": [
            {
                "type": "Action.Submit",
                "title": "Iniciar sesión",
                "data": {"action": "login"},
            }
        ],
    }


def user_info_card(session: Session) -> dict[str, Any]:
    """Profile facts of the logged-in user."""
    return {
        "type": "AdaptiveCard",
        "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
        "version": ADAPTIVE_CARD_VERSION,
        "body": [
            {
                "type": "TextBlock",
                "text": "Tu información",
                "size": "Large",
                "weight": "Bolder",
            },
            {
                "type": "FactSet",
                "facts": [
                    {"title": "Nombre:", "value": session.display_name},
                    {"title": "Usuario:", "value": session.username or session.user_id},
                    {"title": "Paterno:", "value": session.surname1 or "N/A"},
                    {"title": "Materno:", "value": session.surname2 or "N/A"},
                    {"title": "Token:", "value": session.token_preview},
                ],
            },
        ],
        "actions": [
            {
                "type": "Action.Submit",
                "title": "Ayuda",
                "data": {"action": "help"},
            }
        ],
    }
