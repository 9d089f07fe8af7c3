"""Tests for registry loading and the reloadable room directory."""

import os

from localbot_ctl.registry import (
    RoomDirectory,
    load_endpoints_registry,
    load_models_registry,
    load_rooms_registry,
)
from test_helpers import write_json


def test_load_endpoints_registry(tmp_path):
    path = write_json(
        tmp_path / "endpoints.json",
        {
            "endpoints": [
                {"id": "gpu", "name": "GPU box", "type": "llama-cpp", "url": "http://gpu:8080", "priority": 1},
                {"id": "odd", "name": "Odd", "type": "tgi", "url": "http://odd", "priority": 9, "notes": "test"},
            ],
            "wechsler": {"scriptPath": "/opt/switch.sh", "managedEndpoints": ["gpu"]},
        },
    )
    registry = load_endpoints_registry(path)
    assert [e.id for e in registry.endpoints] == ["gpu", "odd"]
    assert registry.endpoints[1].type == "tgi"
    assert registry.wechsler.script_path == "/opt/switch.sh"


def test_load_models_registry_keeps_declaration_order(tmp_path, models_payload):
    registry = load_models_registry(write_json(tmp_path / "models.json", models_payload))
    assert list(registry.models) == list(models_payload["models"])
    meta = registry.models["llama-cpp/Nemotron-3-Nano-30B-A3B-IQ4_NL.gguf"]
    assert meta.vram_fit == "fits 2x24GB"
    assert meta.speeds.prompt_filled == 900
    assert registry.meta.last_updated == "2026-10-01"


def test_missing_and_corrupt_files_load_as_none(tmp_path):
    assert load_endpoints_registry(tmp_path / "nope.json") is None
    corrupt = tmp_path / "rooms.json"
    corrupt.write_text("{not json", encoding="utf-8")
    assert load_rooms_registry(corrupt) is None
    invalid = write_json(tmp_path / "models.json", {"models": {"x": {"alias": "x"}}})
    assert load_models_registry(invalid) is None


def _rooms(tmp_path, rooms):
    return write_json(tmp_path / "rooms.json", {"rooms": rooms})


def test_room_directory_resolves_case_insensitively(tmp_path):
    path = _rooms(
        tmp_path,
        {"!abc:matrix.org": {"agentId": "localbot", "roomName": "LLMLab", "publicReset": True}},
    )
    directory = RoomDirectory(path)
    room_id, room = directory.resolve("llmlab")
    assert room_id == "!abc:matrix.org"
    assert room.public_reset is True
    assert directory.resolve("LLMLAB")[0] == room_id
    assert directory.resolve("other") is None
    assert directory.resolve(None) is None


def test_room_directory_reloads_when_file_changes(tmp_path):
    path = _rooms(tmp_path, {"r1": {"agentId": "a", "roomName": "one"}})
    directory = RoomDirectory(path)
    assert directory.resolve("two") is None

    _rooms(tmp_path, {"r2": {"agentId": "a", "roomName": "two"}})
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert directory.resolve("two")[0] == "r2"
    assert directory.resolve("one") is None


def test_room_directory_explicit_reload(tmp_path):
    path = _rooms(tmp_path, {"r1": {"agentId": "a", "roomName": "one"}})
    directory = RoomDirectory(path)
    directory.rooms()
    path.unlink()
    directory.reload()
    assert directory.rooms() == {}


def test_ambiguous_room_names_do_not_resolve(tmp_path):
    path = _rooms(
        tmp_path,
        {
            "r1": {"agentId": "a", "roomName": "Lab"},
            "r2": {"agentId": "b", "roomName": "lab"},
            "r3": {"agentId": "a", "roomName": "ops"},
        },
    )
    directory = RoomDirectory(path)
    assert directory.resolve("lab") is None
    assert directory.resolve("ops")[0] == "r3"
    assert directory.agent_ids() == ["a", "b"]


def test_missing_rooms_file_is_empty(tmp_path):
    directory = RoomDirectory(tmp_path / "missing.json")
    assert directory.rooms() == {}
    assert directory.resolve("anything") is None
