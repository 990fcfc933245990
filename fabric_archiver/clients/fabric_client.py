"""REST API client for Microsoft Fabric.

Implements the WorkspaceApi capability interface with:
- Continuation-token pagination for listings
- Token refresh on a single 401
- Long-running operation polling for item definitions
- Structured ApiError on non-success responses

The client does not retry rate-limited or transient failures itself;
callers wrap each call with the RateLimitedExecutor.
"""

import base64
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from ..core.config import Credentials, get_credentials
from ..errors import ApiError
from ..types.archive import Item, Workspace
from .auth import TokenManager
from .base import WorkspaceApi

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 2.0
MAX_OPERATION_WAIT = 600.0


class FabricClient(WorkspaceApi):
    """Blocking Fabric REST client, safe to share across worker threads."""

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        token_manager: Optional[TokenManager] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_operation_wait: float = MAX_OPERATION_WAIT,
    ):
        """Initialize the client.

        Args:
            credentials: API credentials. If None, loads from environment.
            token_manager: Token manager. If None, one is created.
            transport: Optional httpx transport (used by tests).
            sleep: Sleep used between long-running operation polls.
            max_operation_wait: Seconds to wait for a definition export.
        """
        self._credentials = credentials or get_credentials()
        self._token_manager = token_manager or TokenManager(self._credentials)
        self._sleep = sleep
        self._max_operation_wait = max_operation_wait
        self._client = httpx.Client(
            base_url=self._credentials.api_url,
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "FabricClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # WorkspaceApi

    def list_workspaces(self) -> list[Workspace]:
        return [Workspace.model_validate(raw) for raw in self._get_paged("/workspaces")]

    def list_items(self, workspace_id: str) -> list[Item]:
        items = []
        for raw in self._get_paged(f"/workspaces/{workspace_id}/items"):
            raw.setdefault("workspaceId", workspace_id)
            items.append(Item.model_validate(raw))
        return items

    def export_item(self, workspace_id: str, item_id: str, destination_path: Path) -> None:
        definition = self.get_item_definition(workspace_id, item_id)
        parts = definition.get("definition", {}).get("parts", [])
        write_definition_parts(parts, destination_path)
        logger.debug(f"Wrote {len(parts)} part(s) to {destination_path}")

    # Helpers

    def get_item_definition(self, workspace_id: str, item_id: str) -> dict[str, Any]:
        """Fetch an item definition, waiting on a long-running operation if needed."""
        response = self._request(
            "POST", f"/workspaces/{workspace_id}/items/{item_id}/getDefinition"
        )
        if response.status_code == 202:
            return self._wait_for_operation(response)
        return response.json()

    def _get_paged(self, path: str) -> list[dict[str, Any]]:
        """GET a listing endpoint and follow continuation tokens."""
        results: list[dict[str, Any]] = []
        params: dict[str, str] = {}

        while True:
            data = self._request("GET", path, params=params).json()
            results.extend(data.get("value", []))

            token = data.get("continuationToken")
            if not token:
                return results
            params = {"continuationToken": token}

    def _wait_for_operation(self, response: httpx.Response) -> dict[str, Any]:
        """Poll a long-running operation until it produces a result."""
        location = response.headers.get("Location")
        if not location:
            raise ApiError(response.status_code, "Accepted without an operation location")

        waited = 0.0
        delay = _retry_after(response)

        while waited < self._max_operation_wait:
            self._sleep(delay)
            waited += delay

            poll = self._request("GET", location)
            state = poll.json() if poll.content else {}
            status = state.get("status", "")

            if status == "Succeeded":
                result_url = poll.headers.get("Location") or f"{location.rstrip('/')}/result"
                return self._request("GET", result_url).json()

            if status in ("Failed", "Undefined"):
                error = state.get("error") or {}
                raise ApiError(
                    500,
                    f"Operation failed: {error.get('errorCode', '')} {error.get('message', '')}".strip(),
                )

            delay = _retry_after(poll)

        raise TimeoutError(
            f"Operation {location} did not finish within {self._max_operation_wait:.0f}s"
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, refreshing the token once on 401."""
        token = self._token_manager.get_token()
        response = self._send(method, url, token, **kwargs)

        if response.status_code == 401:
            logger.debug("Got 401, refreshing token")
            token = self._token_manager.force_refresh(token)
            response = self._send(method, url, token, **kwargs)

        if not response.is_success:
            raise ApiError(response.status_code, _error_message(response))

        return response

    def _send(self, method: str, url: str, token: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        logger.debug(f"REST {method} {url}")
        return self._client.request(method, url, headers=headers, **kwargs)


def write_definition_parts(parts: list[dict[str, Any]], destination: Path) -> list[Path]:
    """Write definition parts below a destination folder.

    Args:
        parts: Parts with "path", "payload" and "payloadType".
        destination: Folder to write into (created if absent).

    Returns:
        Paths written.

    Raises:
        ValueError: If a part path escapes the destination folder.
    """
    destination.mkdir(parents=True, exist_ok=True)
    root = destination.resolve()
    written = []

    for part in parts:
        target = (destination / part["path"]).resolve()
        if root not in target.parents:
            raise ValueError(f"Definition part path escapes destination: {part['path']}")

        payload = part.get("payload", "")
        if part.get("payloadType", "InlineBase64") == "InlineBase64":
            content = base64.b64decode(payload)
        else:
            content = payload.encode("utf-8")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        written.append(target)

    return written


def _retry_after(response: httpx.Response) -> float:
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            pass
    return DEFAULT_POLL_INTERVAL


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("errorCode") or data)[:500]
    return str(data)[:500]
