from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from sandbox_core.config import DEFAULT_AGENT_COMMAND, DEFAULT_NETWORK
from sandbox_core.errors import ConfigUnavailableError, FolderUnavailableError
from sandbox_core.paths import SandboxPaths


CONTAINER_HOME = "/home/claude"
CONTAINER_WORKSPACE = f"{CONTAINER_HOME}/workspace"
CONTAINER_CLAUDE_DIR = f"{CONTAINER_HOME}/.claude"
CONTAINER_PROJECTS_DIR = f"{CONTAINER_CLAUDE_DIR}/projects"
CONTAINER_CONFIG_DIR = f"{CONTAINER_HOME}/.config"
CONTAINER_CLAUDE_JSON = f"{CONTAINER_HOME}/.claude.json"
CONTAINER_CLAUDE_JSON_BACKUP = f"{CONTAINER_HOME}/.claude.json.backup"
FALLBACK_FOLDER_NAME = "project"
SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"


@dataclass(frozen=True)
class ContainerRunPlan:
    container_name: str
    image: str
    volumes: tuple[str, ...] = ()
    ports: tuple[str, ...] = ()
    env_vars: tuple[str, ...] = ()
    memory: str | None = None
    cpus: str | None = None
    network: str = DEFAULT_NETWORK


@dataclass(frozen=True)
class AgentExecPlan:
    agent_command: str = DEFAULT_AGENT_COMMAND
    prompt: str | None = None
    dangerously_skip_permissions: bool = False
    continue_session: bool = False
    # None: no resume; "": open the conversation picker
    resume: str | None = None


@dataclass(frozen=True)
class FolderMount:
    host_path: Path
    folder_name: str

    @property
    def container_path(self) -> str:
        return f"{CONTAINER_WORKSPACE}/{self.folder_name}"

    @property
    def volume(self) -> str:
        return f"{self.host_path}:{self.container_path}"


def resolve_folder_mount(folder: str | Path) -> FolderMount:
    try:
        host_path = Path(folder).expanduser().resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise FolderUnavailableError(f"Cannot access folder: {folder}") from exc
    return FolderMount(host_path=host_path, folder_name=host_path.name or FALLBACK_FOLDER_NAME)


def resolve_folder_mounts(folders: Iterable[str | Path]) -> list[FolderMount]:
    return [resolve_folder_mount(folder) for folder in folders]


def prepare_container_volumes(
    paths: SandboxPaths,
    container_name: str,
    mounts: Sequence[FolderMount],
) -> tuple[str, ...]:
    """Create the host-side state directories and return ``-v`` specs.

    Conversation history is per container; credentials and settings are
    shared by every container.
    """
    conversations_dir = paths.container_conversations_dir(container_name)
    try:
        paths.ensure_root()
        conversations_dir.mkdir(parents=True, exist_ok=True)
        paths.shared_claude_dir.mkdir(parents=True, exist_ok=True)
        paths.shared_config_dir.mkdir(parents=True, exist_ok=True)
        for seed_file in (paths.shared_claude_json, paths.shared_claude_json_backup):
            if not seed_file.exists():
                seed_file.write_text("{}", encoding="utf-8")
    except OSError as exc:
        raise ConfigUnavailableError(f"Unable to prepare state for container '{container_name}': {exc}") from exc

    volumes = [mount.volume for mount in mounts]
    volumes.extend(
        [
            f"{paths.shared_claude_dir}:{CONTAINER_CLAUDE_DIR}",
            f"{conversations_dir}:{CONTAINER_PROJECTS_DIR}",
            f"{paths.shared_claude_json}:{CONTAINER_CLAUDE_JSON}",
            f"{paths.shared_claude_json_backup}:{CONTAINER_CLAUDE_JSON_BACKUP}",
            f"{paths.shared_config_dir}:{CONTAINER_CONFIG_DIR}",
        ]
    )
    return tuple(volumes)


def compile_container_run_command(plan: ContainerRunPlan, *, binary: str = "docker") -> list[str]:
    cmd: list[str] = [str(binary), "run", "-d", "--name", str(plan.container_name)]
    for volume in plan.volumes:
        cmd.extend(["-v", str(volume)])
    if plan.memory:
        cmd.extend(["--memory", str(plan.memory)])
    if plan.cpus:
        cmd.extend(["--cpus", str(plan.cpus)])
    for port in plan.ports:
        cmd.extend(["-p", str(port)])
    for entry in plan.env_vars:
        cmd.extend(["-e", str(entry)])
    cmd.extend(["--network", str(plan.network)])
    cmd.append(str(plan.image))
    return cmd


def compile_agent_exec_command(plan: AgentExecPlan) -> list[str]:
    cmd = [str(plan.agent_command)]
    if plan.dangerously_skip_permissions:
        cmd.append(SKIP_PERMISSIONS_FLAG)
    if plan.continue_session:
        cmd.append("-c")
    elif plan.resume is not None:
        cmd.append("-r")
        if plan.resume:
            cmd.append(str(plan.resume))
    if plan.prompt:
        cmd.append(str(plan.prompt))
    return cmd
