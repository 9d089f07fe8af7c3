"""Tests for the active-endpoint benchmark."""

import json

import httpx
import pytest

from localbot_ctl.benchmark import benchmark_endpoint
from localbot_ctl.models import ProbeResult
from test_helpers import make_endpoint


def _active(type: str, model: str = "m") -> ProbeResult:
    return ProbeResult(endpoint=make_endpoint("gpu", type=type), online=True, model=model)


@pytest.mark.asyncio
async def test_llama_cpp_reads_timings(make_http):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chat/completions"
        body = json.loads(request.content)
        assert body["max_tokens"] == 30
        return httpx.Response(200, json={"timings": {"predicted_per_second": 88.25, "prompt_per_second": 1500}})

    result = await benchmark_endpoint(_active("llama-cpp"), http=await make_http(handler))
    assert result.success is True
    assert result.generation_tps == 88.25
    assert result.prompt_tps == 1500.0
    assert result.roundtrip_ms >= 0


@pytest.mark.asyncio
async def test_llama_cpp_without_timings_fails(make_http):
    http = await make_http(lambda request: httpx.Response(200, json={"choices": []}))
    result = await benchmark_endpoint(_active("llama-cpp"), http=http)
    assert result.success is False
    assert result.error == "No timing data in response"


@pytest.mark.asyncio
async def test_ollama_rates_from_durations(make_http):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/generate"
        body = json.loads(request.content)
        assert body == {"model": "llama3:8b", "prompt": "Count from 1 to 10", "stream": False}
        return httpx.Response(
            200,
            json={
                "eval_count": 50,
                "eval_duration": 1_000_000_000,
                "prompt_eval_count": 20,
                "prompt_eval_duration": 100_000_000,
            },
        )

    result = await benchmark_endpoint(_active("ollama", "llama3:8b"), http=await make_http(handler))
    assert result.success is True
    assert result.generation_tps == pytest.approx(50.0)
    assert result.prompt_tps == pytest.approx(200.0)


@pytest.mark.asyncio
async def test_vllm_without_timing_fields_still_succeeds(make_http):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/completions"
        return httpx.Response(200, json={"choices": [{"text": "1 2 3"}]})

    result = await benchmark_endpoint(_active("vllm"), http=await make_http(handler))
    assert result.success is True
    assert result.generation_tps is None


@pytest.mark.asyncio
async def test_http_error_status(make_http):
    http = await make_http(lambda request: httpx.Response(500))
    result = await benchmark_endpoint(_active("vllm"), http=http)
    assert result.success is False
    assert result.error == "HTTP 500"


@pytest.mark.asyncio
async def test_unknown_type(make_http):
    http = await make_http(lambda request: httpx.Response(200))
    result = await benchmark_endpoint(_active("tgi"), http=http)
    assert result.success is False
    assert result.error == "Unknown endpoint type: tgi"
