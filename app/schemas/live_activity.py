"""
Live Activity Schemas
=====================

Pydantic schemas for the ride-tracking Live Activity endpoints.

``content_state`` and ``attributes`` travel as base64-encoded JSON
objects, exactly as the iOS client produces them.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class LiveActivityAlert(BaseModel):
    """Alert shown when a Live Activity update arrives."""

    title: Optional[str] = None
    body: Optional[str] = None
    sound: Optional[str] = None

    @classmethod
    def ride_found(cls, driver_name: str, vehicle_info: str) -> "LiveActivityAlert":
        return cls(
            title="Driver Found! 🚗",
            body=f"{driver_name} is heading to pick you up in a {vehicle_info}",
            sound="default",
        )

    @classmethod
    def driver_arriving(cls, driver_name: str, estimated_time: str) -> "LiveActivityAlert":
        return cls(
            title="Driver Arriving",
            body=f"{driver_name} will arrive in {estimated_time}",
            sound="default",
        )

    @classmethod
    def ride_started(cls, destination: str) -> "LiveActivityAlert":
        return cls(
            title="Ride Started",
            body=f"On your way to {destination}",
            sound="default",
        )

    @classmethod
    def ride_completed(cls, fare: Optional[str] = None) -> "LiveActivityAlert":
        body = (
            f"You've arrived! Fare: ${fare}"
            if fare is not None
            else "You've arrived at your destination!"
        )
        return cls(title="Ride Completed ✅", body=body, sound="default")

    @classmethod
    def ride_cancelled(cls, reason: str = "by driver") -> "LiveActivityAlert":
        return cls(
            title="Ride Cancelled",
            body=f"Your ride was cancelled {reason}",
            sound="default",
        )

    def to_aps(self) -> dict[str, str]:
        """The ``aps.alert`` dictionary (sound lives beside it)."""
        return self.model_dump(include={"title", "body"}, exclude_none=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class LiveActivityRequest(BaseModel):
    """Request for POST /liveactivities/send – ride start."""

    activity_id: str = Field(..., min_length=1)
    push_token: str
    content_state: str = Field(..., description="Base64-encoded JSON content state.")
    attributes: Optional[str] = Field(default=None, description="Base64-encoded JSON attributes.")
    alert: Optional[LiveActivityAlert] = None
    priority: Optional[int] = Field(default=None, ge=1, le=10)
    sound: Optional[str] = None


class LiveActivityUpdateRequest(BaseModel):
    """Request for POST /liveactivities/update – ride status change."""

    activity_id: str = Field(..., min_length=1)
    push_token: str
    content_state: str = Field(..., description="Base64-encoded JSON content state.")
    alert: Optional[LiveActivityAlert] = None
    priority: Optional[int] = Field(default=None, ge=1, le=10)
    sound: Optional[str] = None


class LiveActivityEndRequest(BaseModel):
    """Request for POST /liveactivities/end – ride finished or cancelled."""

    activity_id: str = Field(..., min_length=1)
    push_token: str
    final_content_state: Optional[str] = None
    dismissal_date: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class LiveActivityResponse(BaseModel):
    """Acknowledgement plus push delivery status."""

    success: bool
    message: str
    activity_id: Optional[str] = None
    timestamp: datetime
    delivery: Optional[dict[str, Any]] = None
