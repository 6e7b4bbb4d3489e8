"""
Live Activities Service
=======================

Ride-tracking Live Activity notifications.

Handles:
- Push token and payload validation
- At-most-once ride start per activity id (``ActivityDeduper``)
- Ride alert generation from the decoded content state
- APNs payload construction and delivery via ``APNsClient``

State changes (marking an activity live or ended) are committed before
delivery and are not rolled back when delivery fails; the failure is
reported in the response instead.
"""

import logging
import math
from enum import Enum
from typing import Any, Optional

from app.core.errors import DuplicateActivityError
from app.schemas.live_activity import (
    LiveActivityAlert,
    LiveActivityEndRequest,
    LiveActivityRequest,
    LiveActivityResponse,
    LiveActivityUpdateRequest,
)
from app.services.activity_deduper import ActivityDeduper
from app.services.apns import APNsClient, DeliveryResult
from app.utils.helpers import Clock, from_timestamp, system_clock
from app.utils.validators import (
    decode_optional_state_blob,
    decode_state_blob,
    validate_push_token,
)

logger = logging.getLogger(__name__)

START_PRIORITY = 10
UPDATE_PRIORITY = 5
END_PRIORITY = 5

DEFAULT_DRIVER_NAME = "Your driver"
DEFAULT_VEHICLE_INFO = "vehicle"
DEFAULT_DESTINATION = "your destination"
DEFAULT_PICKUP_ETA = "5 minutes"


class AlertType(str, Enum):
    START = "start"
    UPDATE = "update"
    END = "end"


def _text(value: Any, default: str) -> str:
    """Render a decoded JSON value as alert text; empty values fall back."""
    if value is None or value == "":
        return default
    return str(value)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a fare
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def generate_ride_alert(
    content_state: Optional[dict[str, Any]],
    attributes: Optional[dict[str, Any]],
    alert_type: AlertType,
) -> LiveActivityAlert:
    """
    Pick the alert matching the ride status in *content_state*.

    An end without a final content state reads as a completed ride.
    """
    if content_state is None:
        if alert_type is AlertType.END:
            return LiveActivityAlert.ride_completed()
        content_state = {}

    status = _text(content_state.get("status"), "unknown")
    current_step = _text(content_state.get("currentStep"), "")
    fare = content_state.get("fare")

    attributes = attributes or {}
    driver_name = _text(attributes.get("driverName"), DEFAULT_DRIVER_NAME)
    vehicle_info = _text(attributes.get("vehicleInfo"), DEFAULT_VEHICLE_INFO)
    dropoff_location = _text(attributes.get("dropoffLocation"), DEFAULT_DESTINATION)

    if status == "driver_found":
        return LiveActivityAlert.ride_found(driver_name, vehicle_info)
    if status == "driver_pickup":
        return LiveActivityAlert.driver_arriving(driver_name, DEFAULT_PICKUP_ETA)
    if status == "driver_dropoff":
        return LiveActivityAlert.ride_started(dropoff_location)
    if status == "completed":
        fare_str = f"{fare:.2f}" if _is_number(fare) else None
        return LiveActivityAlert.ride_completed(fare_str)
    if status == "cancelled":
        return LiveActivityAlert.ride_cancelled()

    return LiveActivityAlert(title="Ride Update", body=current_step, sound="default")


def build_payload(
    *,
    event: str,
    timestamp: int,
    content_state: Optional[dict[str, Any]],
    alert: LiveActivityAlert,
    dismissal_date: Optional[int] = None,
) -> dict[str, Any]:
    """Assemble the APNs ``{"aps": {...}}`` body for a Live Activity push."""
    aps: dict[str, Any] = {
        "timestamp": timestamp,
        "event": event,
        "content-state": content_state or {},
    }
    alert_body = alert.to_aps()
    if alert_body:
        aps["alert"] = alert_body
    if alert.sound:
        aps["sound"] = alert.sound
    if dismissal_date is not None:
        aps["dismissal-date"] = dismissal_date
    return {"aps": aps}


class LiveActivitiesService:
    """Service for ride Live Activity notifications."""

    def __init__(
        self,
        push_client: APNsClient,
        deduper: ActivityDeduper,
        clock: Clock = system_clock,
    ):
        self.push_client = push_client
        self.deduper = deduper
        self._clock = clock

    def _response(self, activity_id: str, result: DeliveryResult) -> LiveActivityResponse:
        return LiveActivityResponse(
            success=result.success,
            message=result.message,
            activity_id=activity_id,
            timestamp=from_timestamp(self._clock()),
            delivery=result.to_dict(),
        )

    @staticmethod
    def _apply_overrides(
        alert: LiveActivityAlert,
        override: Optional[LiveActivityAlert],
        sound: Optional[str],
    ) -> LiveActivityAlert:
        if override is not None:
            alert = override
        if sound is not None:
            alert = alert.model_copy(update={"sound": sound})
        return alert

    async def start_activity(self, request: LiveActivityRequest) -> LiveActivityResponse:
        """
        Start tracking a ride.

        Raises:
            InvalidTokenError: If the push token is malformed
            InvalidPayloadError: If content state or attributes are undecodable
            DuplicateActivityError: If the activity is already live
        """
        logger.info("Starting ride tracking for activityId: %s", request.activity_id)

        validate_push_token(request.push_token)
        content_state = decode_state_blob(request.content_state, "content_state")
        attributes = decode_optional_state_blob(request.attributes, "attributes")

        if attributes:
            logger.info(
                "Starting ride: Driver=%s, Type=%s, From=%s, To=%s",
                attributes.get("driverName", "Unknown"),
                attributes.get("rideType", "unknown"),
                attributes.get("pickupLocation", "Unknown"),
                attributes.get("dropoffLocation", "Unknown"),
            )

        alert = self._apply_overrides(
            generate_ride_alert(content_state, attributes, AlertType.START),
            request.alert,
            request.sound,
        )

        # Claim the id only once everything that can fail on input has run
        if not await self.deduper.try_start(request.activity_id):
            raise DuplicateActivityError(request.activity_id)

        payload = build_payload(
            event="update",
            timestamp=int(self._clock()),
            content_state=content_state,
            alert=alert,
        )
        result = await self.push_client.send(
            push_token=request.push_token,
            payload=payload,
            activity_id=request.activity_id,
            priority=request.priority or START_PRIORITY,
        )
        return self._response(request.activity_id, result)

    async def update_activity(self, request: LiveActivityUpdateRequest) -> LiveActivityResponse:
        """
        Push a ride status update.

        Raises:
            InvalidTokenError: If the push token is malformed
            InvalidPayloadError: If the content state is undecodable
        """
        logger.info("Updating ride status for activityId: %s", request.activity_id)

        validate_push_token(request.push_token)
        content_state = decode_state_blob(request.content_state, "content_state")

        progress = content_state.get("progress")
        logger.info(
            "Ride update: Status=%s, Step=%s, Progress=%s%%",
            content_state.get("status", "unknown"),
            content_state.get("currentStep", "unknown"),
            int(progress * 100) if _is_number(progress) and math.isfinite(progress) else 0,
        )

        alert = self._apply_overrides(
            generate_ride_alert(content_state, None, AlertType.UPDATE),
            request.alert,
            request.sound,
        )
        payload = build_payload(
            event="update",
            timestamp=int(self._clock()),
            content_state=content_state,
            alert=alert,
        )
        result = await self.push_client.send(
            push_token=request.push_token,
            payload=payload,
            activity_id=request.activity_id,
            priority=request.priority or UPDATE_PRIORITY,
        )
        return self._response(request.activity_id, result)

    async def end_activity(self, request: LiveActivityEndRequest) -> LiveActivityResponse:
        """
        End a ride and release its activity id for a future start.

        Raises:
            InvalidTokenError: If the push token is malformed
            InvalidPayloadError: If the final content state is undecodable
        """
        logger.info("Ending ride for activityId: %s", request.activity_id)

        validate_push_token(request.push_token)
        final_state = decode_optional_state_blob(
            request.final_content_state, "final_content_state"
        )

        if final_state is not None:
            fare = final_state.get("fare")
            if _is_number(fare):
                logger.info(
                    "Ride completed: Status=%s, Fare=$%.2f",
                    final_state.get("status", "unknown"),
                    fare,
                )
            else:
                logger.info("Ride ended: Status=%s", final_state.get("status", "unknown"))

        await self.deduper.end(request.activity_id)

        now = self._clock()
        dismissal = (
            request.dismissal_date.timestamp()
            if request.dismissal_date is not None
            else now
        )
        payload = build_payload(
            event="end",
            timestamp=int(now),
            content_state=final_state,
            alert=generate_ride_alert(final_state, None, AlertType.END),
            dismissal_date=int(dismissal),
        )
        result = await self.push_client.send(
            push_token=request.push_token,
            payload=payload,
            activity_id=request.activity_id,
            priority=END_PRIORITY,
        )
        return self._response(request.activity_id, result)
