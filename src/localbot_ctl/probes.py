"""Protocol probes: one status query strategy per backend type.

Each probe issues bounded-timeout requests against the backend's native
status API and normalizes the answer into a ProbeResult:

  llama-cpp  GET /props
  vllm       GET /v1/models
  ollama     GET /api/ps, falling back to GET /api/tags
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

import httpx

from .backend_client import TIMEOUTS, BackendClient, client
from .model_matcher import WEIGHT_FILE_SUFFIX_RE
from .models import EndpointConfig, ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = TIMEOUTS["probe"]


class ProbeTimeout(Exception):
    """A probe call outlived its wall-clock budget."""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _error_text(exc: Exception) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


def _offline(endpoint: EndpointConfig, error: str, start: float | None = None) -> ProbeResult:
    latency = _elapsed_ms(start) if start is not None else 0
    logger.debug("Endpoint %s offline: %s", endpoint.id, error)
    return ProbeResult(endpoint=endpoint, online=False, error=error, latency_ms=latency)


async def _get(http: BackendClient, url: str, timeout: float) -> httpx.Response:
    """GET bounded by a wall-clock deadline on top of httpx's per-phase timeouts."""
    try:
        return await asyncio.wait_for(http.get(url, timeout=timeout), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ProbeTimeout(f"timed out after {timeout:g}s") from e


def _json_object(resp: httpx.Response) -> dict[str, Any]:
    payload = resp.json()
    if not isinstance(payload, dict):
        raise ValueError("backend returned non-object JSON")
    return payload


def _display_name(model_path: str) -> str:
    return WEIGHT_FILE_SUFFIX_RE.sub("", model_path.split("/")[-1]) or model_path


async def _probe_llama_cpp(endpoint: EndpointConfig, http: BackendClient, timeout: float) -> ProbeResult:
    start = time.monotonic()
    try:
        resp = await _get(http, f"{endpoint.url}/props", timeout)
        if not resp.is_success:
            return _offline(endpoint, f"HTTP {resp.status_code}", start)
        data = _json_object(resp)
    except (httpx.HTTPError, ProbeTimeout, ValueError) as e:
        return _offline(endpoint, _error_text(e), start)

    model_path = data.get("model_path") or data.get("model_alias") or "unknown"
    generation = data.get("default_generation_settings")
    n_ctx = generation.get("n_ctx") if isinstance(generation, dict) else None
    if n_ctx is None:
        n_ctx = data.get("n_ctx")
    try:
        context_window = int(n_ctx) if n_ctx is not None else 0
    except (TypeError, ValueError):
        context_window = 0

    return ProbeResult(
        endpoint=endpoint,
        online=True,
        model=_display_name(str(model_path)),
        model_path=str(model_path),
        context_window=context_window,
        latency_ms=_elapsed_ms(start),
    )


async def _probe_vllm(endpoint: EndpointConfig, http: BackendClient, timeout: float) -> ProbeResult:
    start = time.monotonic()
    try:
        resp = await _get(http, f"{endpoint.url}/v1/models", timeout)
        if not resp.is_success:
            return _offline(endpoint, f"HTTP {resp.status_code}", start)
        data = _json_object(resp)
    except (httpx.HTTPError, ProbeTimeout, ValueError) as e:
        return _offline(endpoint, _error_text(e), start)

    models = data.get("data") or []
    first = models[0] if isinstance(models, list) and models else None
    model_id = first.get("id") if isinstance(first, dict) else None
    return ProbeResult(
        endpoint=endpoint,
        online=True,
        model=str(model_id or "unknown"),
        latency_ms=_elapsed_ms(start),
    )


async def _probe_ollama(endpoint: EndpointConfig, http: BackendClient, timeout: float) -> ProbeResult:
    start = time.monotonic()

    # Loaded models first; a failed /api/ps still leaves /api/tags to try.
    try:
        ps_resp = await _get(http, f"{endpoint.url}/api/ps", timeout)
        if ps_resp.is_success:
            running = _json_object(ps_resp).get("models") or []
            if isinstance(running, list) and running:
                first = running[0] if isinstance(running[0], dict) else {}
                return ProbeResult(
                    endpoint=endpoint,
                    online=True,
                    model=str(first.get("name") or first.get("model") or "unknown"),
                    latency_ms=_elapsed_ms(start),
                )
    except (httpx.HTTPError, ProbeTimeout, ValueError) as e:
        logger.debug("Ollama %s /api/ps failed: %s", endpoint.id, e)

    try:
        tags_resp = await _get(http, f"{endpoint.url}/api/tags", timeout)
        if not tags_resp.is_success:
            return _offline(endpoint, f"HTTP {tags_resp.status_code}", start)
        available = _json_object(tags_resp).get("models") or []
    except (httpx.HTTPError, ProbeTimeout, ValueError) as e:
        return _offline(endpoint, _error_text(e), start)

    count = len(available) if isinstance(available, list) else 0
    return ProbeResult(
        endpoint=endpoint,
        online=True,
        model=f"{count} available (none loaded)" if count else "no models",
        latency_ms=_elapsed_ms(start),
    )


ProbeFn = Callable[[EndpointConfig, BackendClient, float], Awaitable[ProbeResult]]

PROBES: dict[str, ProbeFn] = {
    "llama-cpp": _probe_llama_cpp,
    "vllm": _probe_vllm,
    "ollama": _probe_ollama,
}


async def probe_endpoint(
    endpoint: EndpointConfig,
    *,
    http: BackendClient | None = None,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> ProbeResult:
    """Probe one endpoint with the strategy matching its type."""
    probe = PROBES.get(endpoint.type)
    if probe is None:
        return _offline(endpoint, f"unknown type: {endpoint.type}")
    return await probe(endpoint, http or client, timeout)
