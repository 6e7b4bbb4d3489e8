"""
Live Activities API Endpoints
=============================

Ride-tracking Live Activity pushes (start, update, end).

Delivery:
    Pushes go to APNs unless APNs credentials are missing, in which case
    delivery is simulated.  A failed delivery is not an error of the
    request itself: the state change stands and the response reports
    ``success: false`` with HTTP 502.
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.dependencies import LiveActivities
from app.schemas.live_activity import (
    LiveActivityEndRequest,
    LiveActivityRequest,
    LiveActivityResponse,
    LiveActivityUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _deliver(response: LiveActivityResponse):
    if response.success:
        return response

    logger.warning(
        "Push delivery failed for activity %s: %s",
        response.activity_id,
        response.message,
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=response.model_dump(mode="json"),
    )


@router.post(
    "/send",
    response_model=LiveActivityResponse,
    responses={
        409: {"description": "Activity already live"},
        502: {"description": "Push delivery failed", "model": LiveActivityResponse},
    },
)
async def start_live_activity(request: LiveActivityRequest, service: LiveActivities):
    """
    Start tracking a ride.

    - **activity_id**: Live Activity identifier (one start per id until ended)
    - **push_token**: Hex APNs push token of the activity
    - **content_state**: Base64-encoded JSON content state
    - **attributes**: Base64-encoded JSON ride attributes (optional)
    """
    return _deliver(await service.start_activity(request))


@router.post(
    "/update",
    response_model=LiveActivityResponse,
    responses={502: {"description": "Push delivery failed", "model": LiveActivityResponse}},
)
async def update_live_activity(request: LiveActivityUpdateRequest, service: LiveActivities):
    """Push a ride status update."""
    return _deliver(await service.update_activity(request))


@router.post(
    "/end",
    response_model=LiveActivityResponse,
    responses={502: {"description": "Push delivery failed", "model": LiveActivityResponse}},
)
async def end_live_activity(request: LiveActivityEndRequest, service: LiveActivities):
    """End a ride; the activity id may be started again afterwards."""
    return _deliver(await service.end_activity(request))
