import logging

import httpx

logger = logging.getLogger(__name__)

# Timeout presets per call type (seconds)
TIMEOUTS = {
    "probe": 5.0,
    "benchmark": 60.0,
    "benchmark-llama-cpp": 30.0,
    "default": 60.0,
}


class BackendClient:
    """Shared async HTTP client for inference backend calls.

    No retries: every call is bounded by a single timeout so one stalled
    backend cannot stretch a status query beyond its own budget.
    """

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None

    async def start(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
            transport=transport,
        )

    async def stop(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        """Return initialized client or raise a clear runtime error."""
        if self._client is None:
            raise RuntimeError("Backend client is not started")
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout_type: str = "default",
        timeout: float | None = None,
        **kwargs,
    ) -> httpx.Response:
        """Send a single request bounded by ``timeout`` or the preset for ``timeout_type``."""
        if timeout is None:
            timeout = TIMEOUTS.get(timeout_type, TIMEOUTS["default"])
        return await self._require_client().request(method, url, timeout=timeout, **kwargs)

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)


# Singleton
client = BackendClient()
