"""Authentication and token management for the Fabric REST API.

Provides thread-safe token caching with automatic refresh and single-flight
coordination so concurrent export workers trigger only one token request.
"""

import threading
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from ..core.config import Credentials, get_credentials

# Buffer time before token expiry (seconds)
TOKEN_EXPIRY_BUFFER_SECONDS = 60


@dataclass
class TokenCache:
    """Cached access token with expiration tracking."""

    access_token: str
    expires_at: float  # Unix timestamp

    def is_expired(self) -> bool:
        """Check if token is expired or about to expire."""
        return time.time() >= (self.expires_at - TOKEN_EXPIRY_BUFFER_SECONDS)


class TokenManager:
    """Thread-safe client-credentials token manager.

    Implements double-checked locking and a single-flight refresh to
    prevent multiple simultaneous token requests.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the token manager.

        Args:
            credentials: Service principal credentials. If None, loads from
                environment.
            transport: Optional httpx transport (used by tests).
        """
        self._credentials = credentials or get_credentials()
        self._transport = transport
        self._token_cache: Optional[TokenCache] = None
        self._lock = threading.Lock()
        self._condition = threading.Condition(self._lock)
        self._refresh_in_progress = False

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    def get_token(self) -> str:
        """Get a valid access token, refreshing if necessary.

        Returns:
            Valid access token string.

        Raises:
            httpx.HTTPStatusError: If token request fails.
        """
        # Fast path: check without lock
        cache = self._token_cache
        if cache and not cache.is_expired():
            return cache.access_token

        return self._refresh(rejected_token=None)

    def force_refresh(self, rejected_token: Optional[str] = None) -> str:
        """Replace a token the API rejected, coordinating with other threads.

        Used when a 401 error is received. If another thread already replaced
        the rejected token, its result is returned without a new request.

        Args:
            rejected_token: Token that got the 401. Defaults to the cached one.

        Returns:
            New access token string.
        """
        if rejected_token is None:
            with self._lock:
                cache = self._token_cache
                rejected_token = cache.access_token if cache else None

        return self._refresh(rejected_token=rejected_token)

    def invalidate(self) -> None:
        """Invalidate the current token cache."""
        with self._lock:
            self._token_cache = None

    def _refresh(self, rejected_token: Optional[str]) -> str:
        """Single-flight refresh; returns the token this call can use."""
        with self._condition:
            while True:
                cache = self._token_cache
                if (
                    cache
                    and not cache.is_expired()
                    and cache.access_token != rejected_token
                ):
                    return cache.access_token
                if not self._refresh_in_progress:
                    break
                self._condition.wait()

            self._refresh_in_progress = True

        new_cache: Optional[TokenCache] = None
        try:
            new_cache = self._do_refresh()
        finally:
            with self._condition:
                if new_cache is not None:
                    self._token_cache = new_cache
                self._refresh_in_progress = False
                self._condition.notify_all()

        return new_cache.access_token

    def _do_refresh(self) -> TokenCache:
        """Perform the actual token request."""
        payload = {
            "grant_type": "client_credentials",
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,
            "scope": self._credentials.scope,
        }

        with httpx.Client(timeout=30, transport=self._transport) as client:
            response = client.post(self._credentials.token_url, data=payload)
            response.raise_for_status()
            data = response.json()

        expires_in = int(data.get("expires_in", 3600))
        return TokenCache(
            access_token=data["access_token"],
            expires_at=time.time() + expires_in,
        )
