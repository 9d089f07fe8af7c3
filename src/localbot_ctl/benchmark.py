"""Short generation benchmark against the active endpoint."""

import logging
import time
from typing import Any

import httpx

from .backend_client import BackendClient, client
from .models import BenchmarkResult, ProbeResult

logger = logging.getLogger(__name__)

BENCHMARK_PROMPT = "Count from 1 to 10"
BENCHMARK_MAX_TOKENS = 30


def _rate(count: Any, duration_ns: Any) -> float | None:
    """Tokens per second from an Ollama count / nanosecond-duration pair."""
    if not isinstance(count, (int, float)) or not isinstance(duration_ns, (int, float)):
        return None
    if count <= 0 or duration_ns <= 0:
        return None
    return count / (duration_ns / 1e9)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _request_for(active: ProbeResult) -> tuple[str, dict[str, Any], str] | None:
    endpoint = active.endpoint
    if endpoint.type == "llama-cpp":
        body = {
            "model": "gpt",
            "messages": [{"role": "user", "content": BENCHMARK_PROMPT}],
            "max_tokens": BENCHMARK_MAX_TOKENS,
        }
        return f"{endpoint.url}/v1/chat/completions", body, "benchmark-llama-cpp"
    if endpoint.type == "vllm":
        body = {"model": active.model, "prompt": BENCHMARK_PROMPT, "max_tokens": BENCHMARK_MAX_TOKENS}
        return f"{endpoint.url}/v1/completions", body, "benchmark"
    if endpoint.type == "ollama":
        body = {"model": active.model, "prompt": BENCHMARK_PROMPT, "stream": False}
        return f"{endpoint.url}/api/generate", body, "benchmark"
    return None


async def benchmark_endpoint(active: ProbeResult, *, http: BackendClient | None = None) -> BenchmarkResult:
    endpoint = active.endpoint
    result = BenchmarkResult(success=False, endpoint_name=endpoint.name, model=active.model)

    request = _request_for(active)
    if request is None:
        result.error = f"Unknown endpoint type: {endpoint.type}"
        return result
    url, body, timeout_type = request

    start = time.monotonic()
    try:
        resp = await (http or client).post(url, json=body, timeout_type=timeout_type)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        if not resp.is_success:
            result.error = f"HTTP {resp.status_code}"
            return result
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Benchmark of %s failed: %s", endpoint.id, e)
        result.error = str(e).strip() or type(e).__name__
        return result

    if not isinstance(data, dict):
        result.error = "Unexpected response payload"
        return result

    if endpoint.type == "llama-cpp":
        timings = data.get("timings")
        if not isinstance(timings, dict):
            result.error = "No timing data in response"
            return result
        result.generation_tps = _as_float(timings.get("predicted_per_second"))
        result.prompt_tps = _as_float(timings.get("prompt_per_second"))
    else:
        result.generation_tps = _rate(data.get("eval_count"), data.get("eval_duration"))
        result.prompt_tps = _rate(data.get("prompt_eval_count"), data.get("prompt_eval_duration"))

    result.success = True
    result.roundtrip_ms = elapsed_ms
    logger.info(
        "Benchmark %s: gen=%s pp=%s roundtrip=%dms",
        endpoint.id, result.generation_tps, result.prompt_tps, elapsed_ms,
    )
    return result
