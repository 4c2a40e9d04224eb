"""Bot Framework messaging endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from novabot.dependencies import BotServices, get_services
from novabot.schemas.activity_schema import Activity
from novabot.schemas.response_schema import ActivitiesResponse, ErrorResponse
from novabot.services.channel import ActivityCollector, ConnectorChannelAdapter

router = APIRouter(prefix="/api", tags=["messages"])

ServicesDep = Annotated[BotServices, Depends(get_services)]


@router.post(
    "/messages",
    response_model=None,
    responses={
        200: {"model": ActivitiesResponse},
        401: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def receive_activity(activity: Activity, services: ServicesDep) -> Response:
    """Handle one inbound activity.

    Replies are posted to the connector service, or returned in the body
    when the channel asked for ``expectReplies``.
    """
    if activity.expects_replies:
        collector = ActivityCollector(activity)
        await services.turn_handler.on_turn(activity, collector)
        body = ActivitiesResponse(activities=collector.activities)
        return JSONResponse(body.model_dump())

    adapter = ConnectorChannelAdapter(services.connector, activity)
    await services.turn_handler.on_turn(activity, adapter)
    return Response(status_code=200)
