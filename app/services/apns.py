"""
APNs Push Service
=================

Delivers Live Activity push notifications through Apple Push
Notification service.

Runs in testing mode (deliveries are simulated and reported as
successful) unless APNS_KEY_ID, APNS_TEAM_ID and APNS_PRIVATE_KEY_PATH
are all configured and the key file exists.

Delivery failures are returned as an unsuccessful ``DeliveryResult``,
never raised: by the time a push is sent the caller's session state
has already been committed.
"""

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

import httpx

from app.config import Settings
from app.core.security import ProviderTokenCache

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of one push attempt."""

    success: bool
    message: str
    simulated: bool = False
    status_code: Optional[int] = None
    apns_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class APNsClient:
    """Thin async client for the APNs HTTP/2 provider API."""

    PUSH_TYPE = "liveactivity"

    def __init__(self, settings: Settings):
        self.host = settings.apns_host
        self.bundle_identifier = settings.BUNDLE_IDENTIFIER
        self.environment = settings.APNS_ENVIRONMENT
        self.timeout = settings.APNS_TIMEOUT_SECONDS
        self.testing_mode = not settings.apns_configured

        self._tokens: Optional[ProviderTokenCache] = None
        self._client: Optional[httpx.AsyncClient] = None

        if self.testing_mode:
            logger.warning(
                "APNs configuration missing - running in testing mode "
                "(notifications will be simulated)"
            )
        else:
            self._tokens = ProviderTokenCache(
                key_id=settings.APNS_KEY_ID,
                team_id=settings.APNS_TEAM_ID,
                private_key_path=settings.APNS_PRIVATE_KEY_PATH,
            )
            logger.info(
                "APNs configured - Key ID: %s, Team ID: %s, environment: %s",
                settings.APNS_KEY_ID,
                settings.APNS_TEAM_ID,
                self.environment,
            )

    @property
    def topic(self) -> str:
        return f"{self.bundle_identifier}.push-type.{self.PUSH_TYPE}"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP/2 client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.host,
                http2=True,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_headers(self, priority: int, expiration: Optional[int]) -> dict[str, str]:
        headers = {
            "authorization": f"bearer {self._tokens.get()}",
            "apns-topic": self.topic,
            "apns-push-type": self.PUSH_TYPE,
            "apns-priority": str(priority),
        }
        if expiration is not None:
            headers["apns-expiration"] = str(expiration)
        return headers

    async def send(
        self,
        *,
        push_token: str,
        payload: dict[str, Any],
        activity_id: str,
        priority: int,
        expiration: Optional[int] = None,
    ) -> DeliveryResult:
        """
        Send one Live Activity push.

        Args:
            push_token: Activity push token (already validated)
            payload: APNs JSON payload (``{"aps": {...}}``)
            activity_id: Used for logging only
            priority: ``apns-priority`` header value
            expiration: Optional ``apns-expiration`` epoch seconds

        Returns:
            DeliveryResult describing the outcome
        """
        aps = payload.get("aps", {})
        alert = aps.get("alert") or {}
        logger.info(
            "Sending ride notification for activityId: %s (token %s..., event=%s)",
            activity_id,
            push_token[:16],
            aps.get("event"),
        )
        logger.info("Alert: %s - %s", alert.get("title", "No title"), alert.get("body", "No body"))

        if self.testing_mode:
            logger.info("Testing mode: notification for %s simulated", activity_id)
            return DeliveryResult(
                success=True,
                message="Ride notification sent successfully (simulated)",
                simulated=True,
            )

        try:
            response = await self.client.post(
                f"/3/device/{push_token}",
                content=json.dumps(payload, separators=(",", ":")),
                headers=self._get_headers(priority, expiration),
            )
        except httpx.TimeoutException:
            logger.error("APNs timeout for activity %s", activity_id)
            return DeliveryResult(success=False, message="APNs request timed out")
        except httpx.HTTPError as e:
            logger.error("APNs transport error for activity %s: %s", activity_id, e)
            return DeliveryResult(success=False, message=f"APNs request failed: {e}")

        apns_id = response.headers.get("apns-id")
        if response.status_code == 200:
            return DeliveryResult(
                success=True,
                message="Ride notification sent successfully",
                status_code=200,
                apns_id=apns_id,
            )

        try:
            reason = response.json().get("reason")
        except ValueError:
            reason = response.text[:200] or None

        logger.error(
            "APNs returned status %d for activity %s: %s",
            response.status_code,
            activity_id,
            reason,
        )
        return DeliveryResult(
            success=False,
            message=f"APNs rejected notification: {reason or response.status_code}",
            status_code=response.status_code,
            apns_id=apns_id,
            reason=reason,
        )
