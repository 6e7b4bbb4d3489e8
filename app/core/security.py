"""
Security Module
===============

APNs provider authentication.

Apple accepts token-based auth: an ES256-signed JWT carrying the team id
(``iss``) and issue time (``iat``), with the signing key id in the
header.  A token must be refreshed at most once every 20 minutes and is
rejected after an hour, so it is cached and rotated every 50 minutes.
"""

import logging
import time
from pathlib import Path
from typing import Optional

from jose import jwt

logger = logging.getLogger(__name__)

PROVIDER_TOKEN_ALGORITHM = "ES256"
PROVIDER_TOKEN_TTL_SECONDS = 50 * 60


def create_provider_token(
    key_id: str,
    team_id: str,
    private_key: str,
    issued_at: Optional[int] = None,
) -> str:
    """
    Create an APNs provider authentication token.

    Args:
        key_id: Key ID of the .p8 signing key
        team_id: Apple developer team ID
        private_key: PEM-encoded EC private key
        issued_at: Issue time in epoch seconds (defaults to now)

    Returns:
        Encoded JWT string
    """
    claims = {
        "iss": team_id,
        "iat": int(issued_at if issued_at is not None else time.time()),
    }
    return jwt.encode(
        claims,
        private_key,
        algorithm=PROVIDER_TOKEN_ALGORITHM,
        headers={"kid": key_id},
    )


class ProviderTokenCache:
    """Holds the current provider token and rotates it when stale."""

    def __init__(self, key_id: str, team_id: str, private_key_path: str) -> None:
        self.key_id = key_id
        self.team_id = team_id
        self.private_key_path = private_key_path
        self._private_key: Optional[str] = None
        self._token: Optional[str] = None
        self._issued_at = 0.0

    def _load_key(self) -> str:
        if self._private_key is None:
            self._private_key = Path(self.private_key_path).read_text()
        return self._private_key

    def get(self, now: Optional[float] = None) -> str:
        """Return a valid provider token, signing a new one if needed."""
        now = time.time() if now is None else now
        if self._token is None or now - self._issued_at >= PROVIDER_TOKEN_TTL_SECONDS:
            self._token = create_provider_token(
                self.key_id,
                self.team_id,
                self._load_key(),
                issued_at=int(now),
            )
            self._issued_at = now
            logger.info("Signed new APNs provider token (key %s)", self.key_id)
        return self._token
