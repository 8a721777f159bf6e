"""
Topology controller backed by an application-server domain management API.

Operations are sent as JSON to ``POST {base_url}/management``:

    {"operation": "stop", "address": [{"host": "primary"}, {"server-config": "node-1"}],
     "blocking": true, "timeout": 30}

A ``{"outcome": "success"}`` answer means the request was honored; any other
answer is a topology control failure.
"""

import math
from typing import Any

import httpx

from failover_harness.errors import TopologyControlError
from failover_harness.interfaces import TopologyController
from failover_harness.logging import get_logger

logger = get_logger(__name__)

# Extra HTTP time on top of the grace period before a stop counts as not honored
STOP_MARGIN_S = 10.0


class ManagementTopologyController(TopologyController):
    """
    Stop/start cluster members through a domain controller.

    Each node id maps to the ``(host, server-config)`` pair that addresses
    it in the domain; unmapped node ids default to ``(default_host, node_id)``.
    """

    def __init__(
        self,
        base_url: str,
        servers: dict[str, tuple[str, str]] | None = None,
        default_host: str = "primary",
        username: str | None = None,
        password: str | None = None,
        timeout_s: float = 60.0,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/management"
        self._servers = servers or {}
        self._default_host = default_host
        self._auth = httpx.DigestAuth(username, password) if username and password else None
        self._timeout_s = timeout_s
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(auth=self._auth, timeout=self._timeout_s)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def address(self, node_id: str) -> list[dict[str, str]]:
        host, server_config = self._servers.get(node_id, (self._default_host, node_id))
        return [{"host": host}, {"server-config": server_config}]

    async def stop(self, node_id: str, grace_period_ms: int) -> None:
        # round up: a sub-second grace period must not become an immediate stop
        grace_s = math.ceil(grace_period_ms / 1000) if grace_period_ms > 0 else 0
        operation = {
            "operation": "stop",
            "address": self.address(node_id),
            "blocking": True,
            "timeout": grace_s,
        }
        await self._execute(node_id, operation, timeout_s=grace_s + STOP_MARGIN_S)

    async def start(self, node_id: str) -> None:
        operation = {
            "operation": "start",
            "address": self.address(node_id),
            "blocking": False,
        }
        await self._execute(node_id, operation, timeout_s=self._timeout_s)

    async def _execute(self, node_id: str, operation: dict[str, Any], timeout_s: float) -> None:
        name = operation["operation"]
        logger.debug("Management request: %s on %s", name, operation["address"])
        client = await self._get_client()
        try:
            response = await client.post(self._url, json=operation, timeout=timeout_s)
        except httpx.TimeoutException as e:
            raise TopologyControlError(
                f"{name} of {node_id} not honored within {timeout_s:.0f}s",
                node_id=node_id,
                operation=name,
            ) from e
        except httpx.HTTPError as e:
            raise TopologyControlError(
                f"{name} of {node_id} failed: {e!r}", node_id=node_id, operation=name
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success or body.get("outcome") != "success":
            description = body.get("failure-description") or response.text[:200]
            raise TopologyControlError(
                f"{name} of {node_id} rejected (status {response.status_code}): {description}",
                node_id=node_id,
                operation=name,
            )
        logger.debug("Management response for %s of %s: %s", name, node_id, body.get("result"))
