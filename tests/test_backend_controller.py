"""Tests for the switch-script backend controller."""

import asyncio
import stat

import pytest

from localbot_ctl.backend_controller import ScriptBackendController, format_gpu_memory
from localbot_ctl.models import BackendState, GpuMemory


def _script(tmp_path, body: str):
    path = tmp_path / "switch.sh"
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


STATUS_JSON = (
    '{"state": "llama-cpp", "active_backend": "llama-cpp", '
    '"slots": [{"n_ctx": 65536, "is_processing": false}], '
    '"saved_slots": ["vllm"], '
    '"gpu_memory": [{"id": 0, "used_mib": 12000, "total_mib": 24000}]}'
)


@pytest.mark.asyncio
async def test_status_parses_json(tmp_path):
    script = _script(tmp_path, f"echo '{STATUS_JSON}'\n")
    status = await ScriptBackendController(script).status()

    assert status.state == BackendState.LLAMA_CPP
    assert status.active_backend == "llama-cpp"
    assert status.slots[0]["n_ctx"] == 65536
    assert status.saved_slots == ["vllm"]
    assert status.gpu_memory[0].total_mib == 24000


@pytest.mark.asyncio
async def test_status_passes_subcommand(tmp_path):
    script = _script(
        tmp_path,
        'if [ "$1 $2" = "status --json" ]; then echo \'{"state": "gpu-idle"}\'; else exit 3; fi\n',
    )
    status = await ScriptBackendController(script).status()
    assert status.state == BackendState.GPU_IDLE
    assert status.active_backend == "none"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        "echo 'not json'\n",
        "echo 'gpu exploded' >&2; exit 1\n",
        "echo '{\"state\": \"warp-drive\"}'\n",
    ],
)
async def test_status_degrades_to_unknown(tmp_path, body):
    status = await ScriptBackendController(_script(tmp_path, body)).status()
    assert status.state == BackendState.UNKNOWN
    assert status.saved_slots == []
    assert status.gpu_memory is None
    assert status.slots is None


@pytest.mark.asyncio
async def test_status_missing_script_degrades(tmp_path):
    status = await ScriptBackendController(str(tmp_path / "missing.sh")).status()
    assert status.state == BackendState.UNKNOWN


@pytest.mark.asyncio
async def test_status_timeout_degrades(tmp_path):
    script = _script(tmp_path, "exec sleep 5\n")
    status = await ScriptBackendController(script, status_timeout=0.2).status()
    assert status.state == BackendState.UNKNOWN


@pytest.mark.asyncio
async def test_switch_success_returns_output(tmp_path):
    script = _script(tmp_path, 'echo "switching to $2"\necho "ready"\n')
    result = await ScriptBackendController(script).switch("vllm")
    assert result.success is True
    assert result.output == "switching to vllm\nready"


@pytest.mark.asyncio
async def test_switch_failure_uses_stderr(tmp_path):
    script = _script(tmp_path, "echo progress; echo 'model load failed' >&2; exit 2\n")
    result = await ScriptBackendController(script).switch("llama-cpp")
    assert result.success is False
    assert result.output == "model load failed"


@pytest.mark.asyncio
async def test_switch_rejects_unknown_target_without_running(tmp_path):
    marker = tmp_path / "ran"
    script = _script(tmp_path, f"touch {marker}\n")
    result = await ScriptBackendController(script).switch("tensorrt")
    assert result.success is False
    assert not marker.exists()


@pytest.mark.asyncio
async def test_switch_timeout(tmp_path):
    script = _script(tmp_path, "exec sleep 5\n")
    result = await ScriptBackendController(script, switch_timeout=0.2).switch("vllm")
    assert result.success is False
    assert "timed out" in result.output


@pytest.mark.asyncio
async def test_stop(tmp_path):
    script = _script(tmp_path, '[ "$1" = "stop" ] && echo stopped\n')
    result = await ScriptBackendController(script).stop()
    assert result.success is True
    assert result.output == "stopped"


@pytest.mark.asyncio
async def test_stop_failure_without_stderr(tmp_path):
    result = await ScriptBackendController(_script(tmp_path, "exit 4\n")).stop()
    assert result.success is False
    assert result.output == "exit code 4"


def test_format_gpu_memory():
    gpus = [GpuMemory(id=0, used_mib=12000, total_mib=24000), GpuMemory(id=1, used_mib=2900, total_mib=24000)]
    assert format_gpu_memory(gpus) == "GPU0: 50% | GPU1: 12%"
    assert format_gpu_memory(None) == "unknown"
    assert format_gpu_memory([]) == "unknown"


@pytest.mark.asyncio
async def test_timeout_survives_process_exiting_before_kill(tmp_path, monkeypatch):
    def _already_gone(self):
        raise ProcessLookupError()

    monkeypatch.setattr(asyncio.subprocess.Process, "kill", _already_gone)
    script = _script(tmp_path, "exec sleep 1\n")
    result = await ScriptBackendController(script, switch_timeout=0.2).switch("vllm")
    assert result.success is False
    assert result.output == "timed out after 0.2s"
