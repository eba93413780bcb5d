from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from sandbox_core.config import SandboxConfig
from sandbox_core.detector import ConversationDetector
from sandbox_core.engine import ContainerEngine
from sandbox_core.launch import (
    AgentExecPlan,
    ContainerRunPlan,
    FolderMount,
    compile_agent_exec_command,
    prepare_container_volumes,
    resolve_folder_mounts,
)
from sandbox_core.naming import derive_container_name
from sandbox_core.ports import normalize_port_mappings
from sandbox_core.store import SandboxStore


LOGGER = logging.getLogger("claude_sandbox.orchestrator")

CONTAINER_STATE_ABSENT = "absent"
CONTAINER_STATE_STOPPED = "stopped"
CONTAINER_STATE_RUNNING = "running"
CONTAINER_STATES = (CONTAINER_STATE_ABSENT, CONTAINER_STATE_STOPPED, CONTAINER_STATE_RUNNING)

RUN_ACTION_CREATE = "create"
RUN_ACTION_RECREATE = "recreate"
RUN_ACTION_ATTACH = "attach"

CONVERSATION_ID_PREVIEW_CHARS = 8


def short_conversation_id(conversation_id: str) -> str:
    return conversation_id[:CONVERSATION_ID_PREVIEW_CHARS]


def probe_container_state(engine: ContainerEngine, container_name: str) -> str:
    if not engine.container_exists(container_name):
        return CONTAINER_STATE_ABSENT
    if engine.container_running(container_name):
        return CONTAINER_STATE_RUNNING
    return CONTAINER_STATE_STOPPED


def needs_recreate_confirmation(state: str, *, ports_requested: bool) -> bool:
    return state == CONTAINER_STATE_RUNNING and ports_requested


def decide_run_action(state: str, *, ports_requested: bool, recreate_confirmed: bool = False) -> str:
    if state not in CONTAINER_STATES:
        raise ValueError(f"Unknown container state: {state!r}")
    if state == CONTAINER_STATE_ABSENT:
        return RUN_ACTION_CREATE
    if state == CONTAINER_STATE_STOPPED:
        return RUN_ACTION_RECREATE
    if ports_requested and recreate_confirmed:
        return RUN_ACTION_RECREATE
    return RUN_ACTION_ATTACH


@dataclass(frozen=True)
class RunRequest:
    folders: tuple[Path, ...]
    container_override: str | None = None
    session_name: str | None = None
    ports: tuple[str, ...] = ()
    env_vars: tuple[str, ...] = ()
    memory: str | None = None
    cpus: str | None = None
    prompt: str | None = None
    dangerously_skip_permissions: bool = False
    continue_session: bool = False
    resume: str | None = None


@dataclass(frozen=True)
class RunOutcome:
    container_name: str
    state: str | None
    action: str | None
    aborted: bool = False
    exit_code: int | None = None
    conversation_id: str | None = None


class RunOrchestrator:
    def __init__(
        self,
        *,
        engine: ContainerEngine,
        store: SandboxStore,
        config: SandboxConfig,
        detector: ConversationDetector,
        confirm: Callable[[str], bool],
        echo: Callable[[str], None],
        ensure_image: Callable[[], None],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._engine = engine
        self._store = store
        self._config = config
        self._detector = detector
        self._confirm = confirm
        self._echo = echo
        self._ensure_image = ensure_image
        self._sleep = sleep

    def run(self, request: RunRequest) -> RunOutcome:
        self._engine.ensure_available()
        ports = tuple(normalize_port_mappings(request.ports))
        mounts = resolve_folder_mounts(request.folders)
        container_name = request.container_override or derive_container_name(request.folders)

        # Declining an overwrite must leave the engine untouched, image builds included.
        if request.session_name and not self._confirm_session_overwrite(request.session_name):
            return RunOutcome(container_name=container_name, state=None, action=None, aborted=True)

        self._ensure_image()

        state = probe_container_state(self._engine, container_name)
        LOGGER.info(
            "Probed container state",
            extra={"component": "orchestrator", "operation": "probe", "container": container_name, "result": state},
        )

        recreate_confirmed = False
        if needs_recreate_confirmation(state, ports_requested=bool(ports)):
            self._echo(f"Container '{container_name}' is already running.")
            recreate_confirmed = self._confirm(f"Recreate with ports {', '.join(ports)}?")
            if not recreate_confirmed:
                self._echo("Attaching without port changes...")
        elif state == CONTAINER_STATE_RUNNING:
            self._echo(f"Container '{container_name}' is already running, attaching...")

        action = decide_run_action(state, ports_requested=bool(ports), recreate_confirmed=recreate_confirmed)
        LOGGER.info(
            "Run decision",
            extra={"component": "orchestrator", "operation": "decide", "container": container_name, "result": action},
        )

        continue_session = request.continue_session
        if action == RUN_ACTION_ATTACH:
            continue_session = True
        else:
            self._provision(container_name, state=state, mounts=mounts, ports=ports, request=request)

        self._store.last_session.save(container_name)

        exec_plan = AgentExecPlan(
            agent_command=self._config.container.agent_command,
            prompt=request.prompt,
            dangerously_skip_permissions=request.dangerously_skip_permissions,
            continue_session=continue_session,
            resume=None if continue_session else request.resume,
        )
        exit_code = self._engine.exec_interactive(container_name, compile_agent_exec_command(exec_plan))

        conversation_id = None
        if request.session_name:
            conversation_id = self._bind_session(request.session_name, container_name)

        return RunOutcome(
            container_name=container_name,
            state=state,
            action=action,
            exit_code=exit_code,
            conversation_id=conversation_id,
        )

    def _confirm_session_overwrite(self, session_name: str) -> bool:
        existing = self._store.sessions.get(session_name)
        if not existing:
            return True
        self._echo(
            f"Session '{session_name}' already exists (conversation: {short_conversation_id(existing)})"
        )
        if self._confirm("Overwrite with new session?"):
            return True
        self._echo(f"Use 'continue -n {session_name}' to resume it.")
        return False

    def _provision(
        self,
        container_name: str,
        *,
        state: str,
        mounts: Sequence[FolderMount],
        ports: tuple[str, ...],
        request: RunRequest,
    ) -> None:
        if state == CONTAINER_STATE_RUNNING:
            self._echo(f"Stopping existing container '{container_name}'...")
            self._engine.stop_container(container_name)
        if state != CONTAINER_STATE_ABSENT:
            self._engine.remove_container(container_name)

        if request.session_name:
            self._echo(f"Starting new session '{request.session_name}' in container '{container_name}'...")
        else:
            self._echo(f"Starting new container '{container_name}'...")
        self._echo("Mapped folders:")
        for mount in mounts:
            self._echo(f"  {mount.host_path} -> {mount.container_path}")
        if ports:
            self._echo("Exposed ports:")
            for port in ports:
                self._echo(f"  -> {port}")

        container_settings = self._config.container
        plan = ContainerRunPlan(
            container_name=container_name,
            image=self._engine.image,
            volumes=prepare_container_volumes(self._store.paths, container_name, mounts),
            ports=ports,
            env_vars=(*container_settings.passthrough_env, *request.env_vars),
            memory=request.memory or container_settings.memory,
            cpus=request.cpus or container_settings.cpus,
            network=self._config.engine.network,
        )
        self._engine.run_container(plan)
        self._store.folders.register(container_name, [mount.host_path for mount in mounts])

        if self._config.engine.settle_seconds > 0:
            self._sleep(self._config.engine.settle_seconds)

    def _bind_session(self, session_name: str, container_name: str) -> str | None:
        conversation_id = self._detector.detect(container_name)
        if not conversation_id:
            self._echo(f"Warning: could not detect conversation ID for session '{session_name}'")
            return None
        self._store.sessions.bind(session_name, conversation_id)
        self._echo(f"Session '{session_name}' saved (conversation: {short_conversation_id(conversation_id)})")
        return conversation_id
