from __future__ import annotations

import json
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from sandbox_core.config import DEFAULT_ENGINE_BINARY, DEFAULT_IMAGE_NAME
from sandbox_core.errors import EngineCommandError, EngineUnreachableError
from sandbox_core.launch import ContainerRunPlan, compile_container_run_command


LOGGER = logging.getLogger("claude_sandbox.engine")

RUNNING_FLAG_TEMPLATE = "{{.State.Running}}"
CONTAINER_NAMES_FORMAT = "{{.Names}}"
CONTAINER_TABLE_FORMAT = "table {{.Names}}\t{{.Status}}\t{{.Ports}}\t{{.CreatedAt}}"
INTERRUPTED_EXIT_CODE = 130

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


def run_command(
    cmd: Sequence[str],
    *,
    capture: bool = True,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    normalized = [str(part) for part in cmd]
    try:
        result = subprocess.run(
            normalized,
            check=False,
            text=True,
            capture_output=capture,
        )
    except FileNotFoundError as exc:
        raise EngineUnreachableError(f"Container engine binary not found: {normalized[0]}") from exc
    if check and result.returncode != 0:
        message = ((result.stdout or "") + (result.stderr or "")).strip()
        if not message:
            message = f"exit code {result.returncode}"
        raise EngineCommandError(f"Command failed ({' '.join(normalized[:2])}): {message}")
    return result


@dataclass(frozen=True)
class ContainerStatus:
    name: str
    status: str
    running: bool


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    modified_at: float


def parse_directory_listing(output: str) -> list[DirectoryEntry]:
    """Parse ``<mtime> <name>`` lines; malformed lines are skipped."""
    entries: list[DirectoryEntry] = []
    for line in str(output or "").splitlines():
        stamp, _, name = line.strip().partition(" ")
        name = name.strip()
        if not name:
            continue
        try:
            modified_at = float(stamp)
        except ValueError:
            continue
        entries.append(DirectoryEntry(name=name, modified_at=modified_at))
    return entries


class ContainerEngine:
    """Docker CLI boundary: every engine interaction goes through ``runner``."""

    def __init__(
        self,
        *,
        binary: str = DEFAULT_ENGINE_BINARY,
        image: str = DEFAULT_IMAGE_NAME,
        runner: CommandRunner = run_command,
    ) -> None:
        self.binary = str(binary)
        self.image = str(image)
        self._runner = runner

    def _cmd(self, *args: str) -> list[str]:
        return [self.binary, *args]

    def ensure_available(self) -> None:
        result = self._runner(self._cmd("info"), capture=True, check=False)
        if result.returncode != 0:
            raise EngineUnreachableError("Docker is not running. Please start Docker and try again.")

    def image_exists(self) -> bool:
        result = self._runner(self._cmd("image", "inspect", self.image), capture=True, check=False)
        return result.returncode == 0

    def build_image(self, *, dockerfile: Path, context: Path, no_cache: bool = False) -> None:
        cmd = self._cmd("build", "-t", self.image)
        if no_cache:
            cmd.append("--no-cache")
        cmd.extend(["-f", str(dockerfile), str(context)])
        started = time.monotonic()
        self._runner(cmd, capture=False, check=True)
        LOGGER.info(
            "Built image %s",
            self.image,
            extra={
                "component": "engine",
                "operation": "build",
                "result": "built",
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )

    def container_exists(self, name: str) -> bool:
        result = self._runner(self._cmd("container", "inspect", name), capture=True, check=False)
        return result.returncode == 0

    def container_running(self, name: str) -> bool:
        result = self._runner(self._cmd("inspect", "-f", RUNNING_FLAG_TEMPLATE, name), capture=True, check=False)
        return (result.stdout or "").strip() == "true"

    def container_status(self, name: str) -> ContainerStatus | None:
        result = self._runner(self._cmd("container", "inspect", name), capture=True, check=False)
        if result.returncode != 0:
            return None
        try:
            payload: Any = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            raise EngineCommandError(f"Unexpected inspect output for container '{name}': {exc}") from exc
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            return None
        state = payload[0].get("State") or {}
        return ContainerStatus(
            name=name,
            status=str(state.get("Status") or "unknown"),
            running=bool(state.get("Running")),
        )

    def run_container(self, plan: ContainerRunPlan) -> None:
        cmd = compile_container_run_command(plan, binary=self.binary)
        try:
            self._runner(cmd, capture=True, check=True)
        except EngineCommandError as exc:
            raise EngineCommandError(f"Failed to start container '{plan.container_name}': {exc}") from exc
        LOGGER.info(
            "Started container",
            extra={"component": "engine", "operation": "run", "container": plan.container_name, "result": "started"},
        )

    def exec_interactive(self, name: str, command: Sequence[str]) -> int:
        cmd = self._cmd("exec", "-it", name, *[str(part) for part in command])
        try:
            result = self._runner(cmd, capture=False, check=False)
        except KeyboardInterrupt:
            LOGGER.info(
                "Detached from container",
                extra={"component": "engine", "operation": "exec", "container": name, "result": "interrupted"},
            )
            return INTERRUPTED_EXIT_CODE
        return int(result.returncode)

    def list_entries(
        self,
        name: str,
        path: str,
        *,
        entry_type: str = "d",
        depth: int = 1,
        pattern: str | None = None,
    ) -> list[DirectoryEntry]:
        """List entries exactly ``depth`` levels below ``path`` inside the container."""
        args = ["exec", name, "find", path, "-mindepth", str(depth), "-maxdepth", str(depth), "-type", entry_type]
        if pattern:
            args.extend(["-name", pattern])
        args.extend(["-printf", "%T@ %f\\n"])
        result = self._runner(self._cmd(*args), capture=True, check=False)
        if result.returncode != 0:
            LOGGER.debug(
                "Directory listing failed for %s",
                path,
                extra={"component": "engine", "operation": "list_entries", "container": name, "result": "failed"},
            )
            return []
        return parse_directory_listing(result.stdout or "")

    def stop_container(self, name: str, *, check: bool = True) -> bool:
        result = self._runner(self._cmd("stop", name), capture=True, check=check)
        return result.returncode == 0

    def remove_container(self, name: str, *, force: bool = False, check: bool = True) -> bool:
        cmd = self._cmd("rm")
        if force:
            cmd.append("-f")
        cmd.append(name)
        result = self._runner(cmd, capture=True, check=check)
        return result.returncode == 0

    def list_containers_table(self) -> str:
        result = self._runner(
            self._cmd("ps", "-a", "--filter", f"ancestor={self.image}", "--format", CONTAINER_TABLE_FORMAT),
            capture=True,
            check=True,
        )
        return result.stdout or ""

    def list_container_names(self) -> list[str]:
        result = self._runner(
            self._cmd("ps", "-a", "--filter", f"ancestor={self.image}", "--format", CONTAINER_NAMES_FORMAT),
            capture=True,
            check=True,
        )
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
