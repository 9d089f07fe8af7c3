from __future__ import annotations

import httpx
import pytest

from localbot_ctl.backend_client import BackendClient
from test_helpers import MODEL_ENTRY


@pytest.fixture
def models_payload() -> dict:
    return {
        "models": {
            "llama-cpp/Nemotron-3-Nano-30B-A3B-IQ4_NL.gguf": MODEL_ENTRY,
            "llama-cpp/Qwen3-8B-Q4_K_M.gguf": {
                **MODEL_ENTRY,
                "alias": "qwen8",
                "name": "Qwen3 8B",
                "context": 32768,
            },
        },
        "meta": {"lastUpdated": "2026-10-01"},
    }


@pytest.fixture
def make_http():
    """Factory for a started BackendClient whose requests go to ``handler``."""

    async def _make(handler) -> BackendClient:
        http = BackendClient()
        await http.start(transport=httpx.MockTransport(handler))
        return http

    return _make
