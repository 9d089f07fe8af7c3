"""Endpoint orchestration: concurrent probing and active-endpoint selection."""

import asyncio
import logging

from .backend_client import BackendClient
from .model_matcher import find_model_metadata
from .models import EndpointsRegistry, ModelsRegistry, ProbeResult
from .probes import DEFAULT_PROBE_TIMEOUT, probe_endpoint

logger = logging.getLogger(__name__)


class EndpointOrchestrator:
    """Probes every configured endpoint at once and orders results by priority."""

    def __init__(
        self,
        models_registry: ModelsRegistry | None = None,
        *,
        http: BackendClient | None = None,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ):
        self._models_registry = models_registry
        self._http = http
        self._timeout = timeout

    def _with_metadata(self, result: ProbeResult) -> ProbeResult:
        if not result.online or not result.model or self._models_registry is None:
            return result
        meta = find_model_metadata(result.model, self._models_registry)
        if meta is None:
            return result
        return result.model_copy(update={"metadata": meta})

    async def probe_all(self, registry: EndpointsRegistry) -> list[ProbeResult]:
        """One result per endpoint, ascending priority; ties keep declaration order."""
        ordered = sorted(registry.endpoints, key=lambda e: e.priority)
        results = await asyncio.gather(
            *(probe_endpoint(e, http=self._http, timeout=self._timeout) for e in ordered)
        )
        online = sum(1 for r in results if r.online)
        logger.info("Probed %d endpoints, %d online", len(results), online)
        return [self._with_metadata(r) for r in results]

    async def get_active_endpoint(self, registry: EndpointsRegistry) -> ProbeResult | None:
        """The highest-priority online endpoint, or None."""
        for result in await self.probe_all(registry):
            if result.online:
                return result
        return None
