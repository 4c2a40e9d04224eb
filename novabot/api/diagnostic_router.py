"""Operational diagnostics."""

from typing import Annotated

from fastapi import APIRouter, Depends

from novabot.dependencies import BotServices, get_services
from novabot.schemas.response_schema import ApiResponse, success_response

router = APIRouter(tags=["diagnostic"])

ServicesDep = Annotated[BotServices, Depends(get_services)]


@router.get("/diagnostic", response_model=ApiResponse[dict])
async def diagnostic(services: ServicesDep) -> dict:
    """Store counts, cached sessions and which collaborators are configured."""
    settings = services.settings
    stats = await services.message_store.stats()
    store = stats.model_dump() if stats else {"unavailable": stats.reason}

    return success_response(
        {
            "app": settings.app.name,
            "environment": settings.app.env,
            "store": store,
            "cached_sessions": services.synchronizer.cached_sessions,
            "pending_background_tasks": services.dispatcher.pending,
            "configured": {
                "channel": settings.channel.is_configured,
                "store": services.message_store.enabled,
                "document_index": services.document_index.configured,
                "llm_provider": settings.llm.provider,
            },
        }
    )
