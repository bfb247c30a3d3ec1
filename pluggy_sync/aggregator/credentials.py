"""Expiry-aware cache for the aggregator API key.

One `CredentialCache` is built at process start and shared by every sync job. Refreshes are idempotent, so concurrent refreshes simply race and the last successful one wins.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import httpx

from pluggy_sync.core.errors import AuthError
from pluggy_sync.core.models import Credential
from pluggy_sync.core.utils import get_logger, utcnow

logger = get_logger("pluggy-sync.credentials")

# Pluggy API keys live for 2 hours.
DEFAULT_TTL = timedelta(hours=1.9)
STATIC_KEY_LIFETIME = timedelta(days=3650)


class CredentialCache:
    """Obtains and caches the aggregator bearer credential."""

    def __init__(
        self,
        http: httpx.Client,
        client_id: str,
        client_secret: str,
        *,
        static_api_key: str = "",
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the cache with an HTTP client bound to the aggregator base URL."""
        self.http = http
        self.client_id = client_id.strip()
        self.client_secret = client_secret.strip()
        self.static_api_key = static_api_key.strip()
        self.ttl = ttl
        self.clock = clock
        self._credential: Credential | None = None
        self.refresh_count = 0

    def get_credential(self, force_refresh: bool = False) -> Credential:
        """Return a valid credential, authenticating when missing, expired or forced."""
        now = self.clock()
        if self.static_api_key:
            return Credential(token=self.static_api_key, expires_at=now + STATIC_KEY_LIFETIME)
        cached = self._credential
        if cached is not None and not force_refresh and cached.is_valid(now):
            return cached
        credential = Credential(token=self._authenticate(), expires_at=now + self.ttl)
        self._credential = credential
        self.refresh_count += 1
        logger.info(f"Aggregator API key refreshed, valid until {credential.expires_at.isoformat()}")
        return credential

    def invalidate(self) -> None:
        """Drop the cached credential so the next call re-authenticates."""
        self._credential = None

    def _authenticate(self) -> str:
        if not self.client_id or not self.client_secret:
            msg = "Aggregator credentials not configured (client id/secret empty)"
            raise AuthError(msg)
        try:
            response = self.http.post("/auth", json={"clientId": self.client_id, "clientSecret": self.client_secret})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            self._credential = None
            msg = f"Aggregator rejected client credentials (HTTP {exc.response.status_code})"
            raise AuthError(msg) from exc
        except (httpx.HTTPError, ValueError) as exc:
            self._credential = None
            msg = f"Aggregator authentication failed: {exc}"
            raise AuthError(msg) from exc
        token = payload.get("apiKey") if isinstance(payload, dict) else None
        if not token:
            self._credential = None
            msg = "Aggregator authentication response has no apiKey"
            raise AuthError(msg)
        return token
