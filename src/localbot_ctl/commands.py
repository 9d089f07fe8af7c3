"""LocalBot chat commands: each handler returns the text shown to the caller."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable

from .authorization import RESET_DENIED_MESSAGE, AuthorizationGate, Caller, Operation
from .backend_client import BackendClient
from .backend_controller import SWITCH_TARGETS, BackendControl, ScriptBackendController, format_gpu_memory
from .benchmark import benchmark_endpoint
from .config import Settings
from .endpoints import EndpointOrchestrator
from .models import BackendState, EndpointsRegistry, ModelMetadata, ModelsRegistry
from .model_matcher import is_same_model
from .registry import RoomDirectory, load_endpoints_registry, load_models_registry
from .session_store import ResetStatus, SessionStore, format_thousands, run_reset

logger = logging.getLogger(__name__)

RUNNING_STATES = (BackendState.LLAMA_CPP, BackendState.VLLM)


@dataclass(frozen=True)
class CommandContext:
    args: str = ""
    is_authorized_sender: bool = False

    @property
    def caller(self) -> Caller:
        return Caller(authorized=self.is_authorized_sender)


@dataclass(frozen=True)
class CommandReply:
    text: str


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str
    operation: Operation
    handler: str


COMMANDS: dict[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("lbh", "LocalBot help - show available commands", Operation.HELP, "help"),
        CommandSpec("lbs", "LocalBot status - backend, GPU, model", Operation.STATUS, "status"),
        CommandSpec("lbm", "LocalBot models - list available models with specs", Operation.LIST, "models"),
        CommandSpec("lbe", "LocalBot endpoints - show all inference backends", Operation.ENDPOINTS, "endpoints"),
        CommandSpec("lbp", "LocalBot performance - benchmark active endpoint", Operation.BENCHMARK, "benchmark"),
        CommandSpec("lbw", "Switch inference backend (llama-cpp|vllm|stop)", Operation.SWITCH, "switch"),
        CommandSpec("lbn", "Reset LocalBot session (room)", Operation.RESET, "reset"),
    )
}


def _k(tokens: int | float) -> int:
    """Token count in units of 1024, rounded half-up."""
    return int(math.floor(tokens / 1024 + 0.5))


def _num(value: float) -> str:
    return f"{value:g}"


def _speeds(meta: ModelMetadata) -> str:
    s = meta.speeds
    return (
        f"gen {_num(s.gen_fresh)}→{_num(s.gen_filled)} | "
        f"pp {_num(s.prompt_fresh)}→{_num(s.prompt_filled)}"
    )


class LocalBotCommands:
    def __init__(
        self,
        settings: Settings,
        *,
        rooms: RoomDirectory | None = None,
        sessions: SessionStore | None = None,
        gate: AuthorizationGate | None = None,
        controller: BackendControl | None = None,
        http: BackendClient | None = None,
    ):
        self._settings = settings
        self._rooms = rooms or RoomDirectory(settings.rooms_path)
        self._sessions = sessions or SessionStore(settings.state_dir)
        self._gate = gate or AuthorizationGate()
        self._controller = controller
        self._http = http

    # --- Shared helpers ---

    def _endpoints_registry(self) -> EndpointsRegistry | None:
        return load_endpoints_registry(self._settings.endpoints_path)

    def _models_registry(self) -> ModelsRegistry | None:
        return load_models_registry(self._settings.models_path)

    def _orchestrator(self, models_registry: ModelsRegistry | None = None) -> EndpointOrchestrator:
        return EndpointOrchestrator(
            models_registry,
            http=self._http,
            timeout=self._settings.probe_timeout_seconds,
        )

    def _backend_control(self, registry: EndpointsRegistry | None) -> BackendControl:
        if self._controller is not None:
            return self._controller
        script = self._settings.controller_script
        if registry is not None and registry.wechsler and registry.wechsler.script_path:
            script = registry.wechsler.script_path
        return ScriptBackendController(
            script,
            workdir=self._settings.controller_workdir or None,
            status_timeout=self._settings.status_timeout_seconds,
            switch_timeout=self._settings.switch_timeout_seconds,
            stop_timeout=self._settings.switch_timeout_seconds,
        )

    # --- Dispatch ---

    async def dispatch(self, name: str, ctx: CommandContext) -> CommandReply | None:
        """Run command ``name``; None when no such command exists."""
        spec = COMMANDS.get(name.strip().lower())
        if spec is None:
            return None
        # Reset applies its own room-level rule.
        if spec.operation != Operation.RESET:
            decision = self._gate.decide(spec.operation, ctx.caller)
            if not decision.allow:
                logger.info("Rejected unauthorized /%s", spec.name)
                return CommandReply(decision.reason)
        handler: Callable[[CommandContext], Awaitable[CommandReply]] = getattr(self, spec.handler)
        return await handler(ctx)

    # --- Handlers ---

    async def help(self, ctx: CommandContext) -> CommandReply:
        rooms = ", ".join(r.room_name for r in self._rooms.rooms().values())
        text = "\n".join(
            [
                "📖 LocalBot Commands",
                "",
                "/lbm           List available models with specs",
                "/lbn <room>    Reset LocalBot session",
                "/lbs           Status (backend, GPU, model)",
                "/lbe           Show all inference endpoints",
                "/lbw <backend> Switch backend (llama-cpp|vllm|stop)",
                "/lbp           Performance benchmark",
                "",
                f"Rooms: {rooms}",
                "Speed: fresh→filled (tok/s with empty vs full context)",
            ]
        )
        return CommandReply(text)

    async def status(self, ctx: CommandContext) -> CommandReply:
        registry = self._endpoints_registry()
        backend = await self._backend_control(registry).status()
        models_registry = self._models_registry()
        lines = ["🤖 LocalBot Status", ""]

        if backend.state == BackendState.GPU_OFFLINE:
            lines.append("🔴 GPU server offline")
            lines.append("   Use /lbw llama-cpp or /lbw vllm to start")
        elif backend.state == BackendState.GPU_IDLE:
            lines.append("🟡 GPU server up, no backend running")
            lines.append("   Use /lbw llama-cpp or /lbw vllm to start")
        else:
            lines.append(f"🟢 Backend: {backend.active_backend}")
            if backend.gpu_memory:
                lines.append(f"🖥️ GPU: {format_gpu_memory(backend.gpu_memory)}")

        if registry is not None and backend.state in RUNNING_STATES:
            active = await self._orchestrator(models_registry).get_active_endpoint(registry)
            if active is not None:
                lines.append(f"📦 Model: {active.model}")
                meta = active.metadata
                if meta is not None:
                    lines.append(f"   {meta.name} ({meta.alias})")
                    lines.append(f"📐 Context: {_k(meta.context)}k | {meta.vram_fit} VRAM")
                    lines.append(f"⚡ Speed: {_speeds(meta)} tok/s")
                elif active.context_window:
                    lines.append(f"📐 Context: {_k(active.context_window)}k tokens")

        if backend.state == BackendState.LLAMA_CPP and backend.slots:
            slot = backend.slots[0]
            n_ctx = slot.get("n_ctx")
            ctx_k = _k(n_ctx) if isinstance(n_ctx, (int, float)) else "?"
            busy = " (busy)" if slot.get("is_processing") else " (idle)"
            lines.append(f"🧠 Slot: {ctx_k}k ctx{busy}")

        if backend.saved_slots:
            lines.append(f"💾 Saved: {', '.join(backend.saved_slots)}")

        lines.append("")
        stats = self._sessions.session_stats(self._rooms.agent_ids())
        if stats.count > 0:
            lines.append(f"📊 Sessions: {stats.count} | {format_thousands(stats.total_tokens)} tokens")

        return CommandReply("\n".join(lines).rstrip("\n"))

    async def models(self, ctx: CommandContext) -> CommandReply:
        models_registry = self._models_registry()
        if models_registry is None:
            return CommandReply("❌ Could not load models registry")

        active_model: str | None = None
        registry = self._endpoints_registry()
        if registry is not None:
            active = await self._orchestrator().get_active_endpoint(registry)
            if active is not None and active.model:
                active_model = active.model

        lines = ["📦 LocalBot Models", ""]
        entries = sorted(models_registry.models.items(), key=lambda item: item[1].alias.casefold())
        for model_id, meta in entries:
            marker = " ⬅ active" if active_model and is_same_model(model_id, active_model) else ""
            lines.append(f"▸ {meta.alias} — {meta.name}{marker}")
            lines.append(f"  {_k(meta.context)}k ctx | {_speeds(meta)}")
            lines.append("")

        if models_registry.meta and models_registry.meta.last_updated:
            lines.append(f"Updated: {models_registry.meta.last_updated}")

        return CommandReply("\n".join(lines).rstrip("\n"))

    async def endpoints(self, ctx: CommandContext) -> CommandReply:
        registry = self._endpoints_registry()
        if registry is None:
            return CommandReply("❌ Could not load endpoints registry")

        results = await self._orchestrator(self._models_registry()).probe_all(registry)
        lines = ["🔌 Inference Endpoints", ""]
        for result in results:
            endpoint = result.endpoint
            lines.append(f"{'✅' if result.online else '❌'} {endpoint.name} ({endpoint.type})")
            lines.append(f"   {endpoint.url}")
            if result.online and result.model:
                meta = result.metadata
                if meta is not None:
                    lines.append(f"   📦 {meta.name} ({meta.alias})")
                    lines.append(f"   ⚡ {_speeds(meta)} tok/s")
                else:
                    lines.append(f"   📦 {result.model}")
            elif not result.online:
                lines.append(f"   ❌ {result.error}")
            if endpoint.notes:
                lines.append(f"   💡 {endpoint.notes}")
            lines.append("")

        online = sum(1 for r in results if r.online)
        lines.append(f"{online}/{len(results)} endpoints online")
        return CommandReply("\n".join(lines))

    async def benchmark(self, ctx: CommandContext) -> CommandReply:
        registry = self._endpoints_registry()
        if registry is None:
            return CommandReply("❌ Could not load endpoints registry")

        active = await self._orchestrator().get_active_endpoint(registry)
        if active is None:
            return CommandReply("❌ No active endpoint")

        result = await benchmark_endpoint(active, http=self._http)
        if not result.success:
            return CommandReply(f"❌ Benchmark failed: {result.error}")

        lines = [f"⚡ Benchmark: {result.endpoint_name}", "", f"📦 Model: {result.model}"]
        if active.endpoint.type == "llama-cpp":
            gen = f"{result.generation_tps:.1f}" if result.generation_tps is not None else "?"
            pp = f"{result.prompt_tps:.1f}" if result.prompt_tps is not None else "?"
            lines.append("")
            lines.append(f"📝 Generation: {gen} tok/s")
            lines.append(f"📥 Prompt: {pp} tok/s")
            lines.append(f"⏱️ Roundtrip: {result.roundtrip_ms}ms")
        else:
            lines.append(f"⏱️ Roundtrip: {result.roundtrip_ms}ms")
            if result.generation_tps is not None:
                lines.append(f"📝 Generation: {result.generation_tps:.1f} tok/s")
            if result.prompt_tps is not None:
                lines.append(f"📥 Prompt: {result.prompt_tps:.1f} tok/s")
        return CommandReply("\n".join(lines))

    async def switch(self, ctx: CommandContext) -> CommandReply:
        target = ctx.args.strip().lower()
        control = self._backend_control(self._endpoints_registry())

        if target not in (*SWITCH_TARGETS, "stop"):
            backend = await control.status()
            return CommandReply(f"Usage: /lbw <llama-cpp|vllm|stop>\n\nCurrent: {backend.state.value}")

        if target == "stop":
            result = await control.stop()
            if result.success:
                return CommandReply(f"✅ Backend stopped\n\n{result.output}")
            return CommandReply(f"❌ Stop failed\n\n{result.output}")

        result = await control.switch(target)
        if result.success:
            return CommandReply(f"✅ Switched to {target}\n\n{result.output}")
        return CommandReply(f"❌ Switch failed\n\n{result.output}")

    async def reset(self, ctx: CommandContext) -> CommandReply:
        outcome = run_reset(ctx.args.strip(), ctx.caller, self._rooms, self._gate, self._sessions)

        if outcome.status == ResetStatus.LIST_ROOMS:
            room_list = " ".join(f"`{name}`" for name in outcome.rooms)
            return CommandReply(f"Usage: /lbn <room>\n\nRooms: {room_list}")
        if outcome.status == ResetStatus.REJECTED:
            return CommandReply(outcome.error or RESET_DENIED_MESSAGE)
        if outcome.status == ResetStatus.ALREADY_FRESH:
            return CommandReply(f"✅ LocalBot session reset ({outcome.room_name}) - was already fresh")
        if outcome.status == ResetStatus.RESET:
            return CommandReply(
                f"✅ LocalBot session reset ({outcome.room_name})\n"
                f"   Cleared {format_thousands(outcome.cleared_tokens)} tokens"
            )
        return CommandReply(f"❌ Reset failed: {outcome.error or 'unknown error'}")
