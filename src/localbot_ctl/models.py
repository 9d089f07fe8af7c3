from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Registry Models ---


class RegistryMeta(BaseModel):
    description: str | None = None
    last_updated: str | None = Field(default=None, alias="lastUpdated")
    updated_by: str | None = Field(default=None, alias="updatedBy")

    model_config = ConfigDict(populate_by_name=True)


class EndpointConfig(BaseModel):
    id: str
    name: str
    # Free string: an unrecognised type still loads and probes as offline.
    type: str
    url: str
    priority: int = 0
    notes: str | None = None

    model_config = ConfigDict(frozen=True)


class ControllerConfig(BaseModel):
    script_path: str | None = Field(default=None, alias="scriptPath")
    managed_endpoints: list[str] = Field(default_factory=list, alias="managedEndpoints")

    model_config = ConfigDict(populate_by_name=True)


class EndpointsRegistry(BaseModel):
    endpoints: list[EndpointConfig] = Field(default_factory=list)
    meta: RegistryMeta | None = None
    wechsler: ControllerConfig | None = None


class ModelSpeeds(BaseModel):
    gen_fresh: float = Field(alias="genFresh")
    gen_filled: float = Field(alias="genFilled")
    prompt_fresh: float = Field(alias="promptFresh")
    prompt_filled: float = Field(alias="promptFilled")

    model_config = ConfigDict(populate_by_name=True)


class ModelMetadata(BaseModel):
    alias: str
    name: str
    context: int
    vram_fit: str = Field(alias="vramFit")
    speeds: ModelSpeeds
    notes: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class ModelsRegistry(BaseModel):
    models: dict[str, ModelMetadata] = Field(default_factory=dict)
    meta: RegistryMeta | None = None


class RoomConfig(BaseModel):
    agent_id: str = Field(alias="agentId")
    room_name: str = Field(alias="roomName")
    public_reset: bool = Field(default=False, alias="publicReset")

    model_config = ConfigDict(populate_by_name=True)


class RoomsRegistry(BaseModel):
    rooms: dict[str, RoomConfig] = Field(default_factory=dict)
    meta: RegistryMeta | None = None


# --- Probe Models ---


class ProbeResult(BaseModel):
    endpoint: EndpointConfig
    online: bool
    model: str | None = None
    model_path: str | None = None
    context_window: int | None = None
    error: str | None = None
    latency_ms: int = 0
    metadata: ModelMetadata | None = None

    @model_validator(mode="after")
    def validate_online_fields(self):
        if self.online:
            if self.error is not None:
                raise ValueError("online probe result must not carry an error")
        else:
            if self.error is None:
                raise ValueError("offline probe result requires an error")
            if self.model is not None or self.model_path is not None or self.context_window is not None:
                raise ValueError("offline probe result must not carry model details")
        return self


# --- Backend Controller Models ---


class BackendState(str, Enum):
    GPU_OFFLINE = "gpu-offline"
    GPU_IDLE = "gpu-idle"
    LLAMA_CPP = "llama-cpp"
    VLLM = "vllm"
    UNKNOWN = "unknown"


class GpuMemory(BaseModel):
    id: int
    used_mib: float
    total_mib: float


class BackendStatus(BaseModel):
    state: BackendState = BackendState.UNKNOWN
    active_backend: str = "none"
    slots: list[dict[str, Any]] | None = None
    saved_slots: list[str] = Field(default_factory=list)
    gpu_memory: list[GpuMemory] | None = None

    @classmethod
    def unknown(cls) -> "BackendStatus":
        """Degraded status reported whenever the controller cannot be queried."""
        return cls()


class ControlResult(BaseModel):
    success: bool
    output: str


# --- Benchmark Models ---


class BenchmarkResult(BaseModel):
    success: bool
    endpoint_name: str
    model: str | None = None
    generation_tps: float | None = None
    prompt_tps: float | None = None
    roundtrip_ms: int | None = None
    error: str | None = None


# --- Command Boundary Models ---


class CommandRequest(BaseModel):
    args: str = ""
    authorized: bool = False


class CommandResponse(BaseModel):
    text: str
