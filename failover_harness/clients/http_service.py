"""
Async HTTP client for a clustered counter service.

One request per invocation, no retries: a retry would hide exactly the
failover faults the harness is looking for.
"""

import httpx

from failover_harness.errors import ServiceInvocationError
from failover_harness.interfaces import ServiceFactory, ServiceHandle
from failover_harness.logging import get_logger

logger = get_logger(__name__)


class HttpCounterService(ServiceHandle):
    """
    Service handle backed by ``POST {base_url}/{implementation}/serial``.

    The endpoint answers ``{"serial": <int>}``. Cookies set by the load
    balancer are kept, so the conversation stays sticky to one session.
    """

    def __init__(self, base_url: str, implementation: str, timeout_s: float = 10.0) -> None:
        self._url = f"{base_url.rstrip('/')}/{implementation}/serial"
        self._timeout_s = timeout_s
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def fetch_and_increment(self) -> int:
        client = await self._get_client()
        try:
            response = await client.post(self._url)
        except httpx.HTTPError as e:
            raise ServiceInvocationError(f"Request to {self._url} failed: {e!r}") from e

        if not response.is_success:
            raise ServiceInvocationError(
                f"Unexpected status {response.status_code} from {self._url}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return int(response.json()["serial"])
        except (ValueError, KeyError, TypeError) as e:
            raise ServiceInvocationError(
                f"Malformed response from {self._url}: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


def http_service_factory(base_url: str, timeout_s: float = 10.0) -> ServiceFactory:
    """Build a factory that binds an implementation identifier to the HTTP endpoint."""

    async def factory(implementation: str) -> ServiceHandle:
        service = HttpCounterService(base_url, implementation, timeout_s=timeout_s)
        logger.info("Using counter service at %s", service.url)
        return service

    return factory
