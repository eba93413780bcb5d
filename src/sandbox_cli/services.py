from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import click

from sandbox_core.config import SandboxConfig
from sandbox_core.engine import ContainerEngine, ContainerStatus
from sandbox_core.errors import (
    ContainerMissingError,
    ContainerNotRunningError,
    EngineCommandError,
    SessionNotFoundError,
)
from sandbox_core.image import write_dockerfile
from sandbox_core.launch import AgentExecPlan, compile_agent_exec_command
from sandbox_core.orchestrator import short_conversation_id
from sandbox_core.paths import SandboxPaths
from sandbox_core.store import SandboxStore


LOGGER = logging.getLogger("claude_sandbox.cli")


@dataclass
class ImageService:
    engine: ContainerEngine
    paths: SandboxPaths
    click_echo: Callable[..., None]

    def build(self, *, no_cache: bool = False) -> None:
        self.click_echo(click.style("Building Claude Code sandbox image...", fg="cyan"))
        dockerfile = write_dockerfile(self.paths)
        self.engine.build_image(dockerfile=dockerfile, context=self.paths.root, no_cache=no_cache)
        self.click_echo(click.style("Image built successfully!", fg="green"))

    def ensure_image(self) -> None:
        if self.engine.image_exists():
            return
        self.click_echo(click.style("Image not found, building...", fg="yellow"))
        self.build()


@dataclass
class SessionService:
    engine: ContainerEngine
    store: SandboxStore
    config: SandboxConfig
    click_echo: Callable[..., None]

    def _require_running(self, container_name: str) -> None:
        self.engine.ensure_available()
        if not self.engine.container_running(container_name):
            raise ContainerNotRunningError(
                f"Container '{container_name}' is not running. Use 'run' to start it."
            )

    def _exec_agent(self, container_name: str, plan: AgentExecPlan) -> int:
        return self.engine.exec_interactive(container_name, compile_agent_exec_command(plan))

    def continue_session(self, container_name: str, session_name: str | None = None) -> int:
        self._require_running(container_name)
        self.store.last_session.save(container_name)
        agent_command = self.config.container.agent_command

        if session_name:
            conversation_id = self.store.sessions.get(session_name)
            if not conversation_id:
                raise SessionNotFoundError(
                    f"Named session '{session_name}' not found. Use 'run -n {session_name}' to create it."
                )
            self.click_echo(
                click.style(
                    f"Resuming session '{session_name}' (conversation: {short_conversation_id(conversation_id)}) "
                    f"in container '{container_name}'...",
                    fg="cyan",
                )
            )
            return self._exec_agent(container_name, AgentExecPlan(agent_command=agent_command, resume=conversation_id))

        self.click_echo(click.style(f"Continuing last conversation in container '{container_name}'...", fg="cyan"))
        return self._exec_agent(container_name, AgentExecPlan(agent_command=agent_command, continue_session=True))

    def resume_conversation(self, container_name: str, conversation_id: str | None = None) -> int:
        self._require_running(container_name)
        self.store.last_session.save(container_name)
        if conversation_id:
            self.click_echo(
                click.style(f"Resuming conversation '{conversation_id}' in container '{container_name}'...", fg="cyan")
            )
        else:
            self.click_echo(click.style(f"Opening conversation picker in container '{container_name}'...", fg="cyan"))
        plan = AgentExecPlan(agent_command=self.config.container.agent_command, resume=conversation_id or "")
        return self._exec_agent(container_name, plan)

    def open_shell(self, container_name: str) -> int:
        self._require_running(container_name)
        self.store.last_session.save(container_name)
        self.click_echo(click.style(f"Opening shell in container '{container_name}'...", fg="cyan"))
        return self.engine.exec_interactive(container_name, [self.config.container.shell_command])


@dataclass
class ContainerService:
    engine: ContainerEngine
    store: SandboxStore
    click_echo: Callable[..., None]

    def stop(self, container_name: str) -> None:
        self.engine.ensure_available()
        if not self.engine.container_exists(container_name):
            raise ContainerMissingError(f"Container '{container_name}' does not exist")
        self.click_echo(click.style(f"Stopping container '{container_name}'...", fg="cyan"))
        self.engine.stop_container(container_name, check=False)
        self.engine.remove_container(container_name)
        self.click_echo(f"{click.style('✓', fg='green')} Container stopped and removed")

    def stop_all(self) -> list[str]:
        self.engine.ensure_available()
        self.click_echo(click.style("Stopping all Claude sandbox containers...", fg="cyan"))
        containers = self.engine.list_container_names()
        if not containers:
            self.click_echo("No containers to stop.")
            return []

        removed: list[str] = []
        failed: list[str] = []
        for container_name in containers:
            self.click_echo(f"  Removing '{container_name}'...")
            self.engine.stop_container(container_name, check=False)
            if self.engine.remove_container(container_name, force=True, check=False):
                removed.append(container_name)
            else:
                failed.append(container_name)

        self.click_echo(f"{click.style('✓', fg='green')} Removed {len(removed)} container(s)")
        if failed:
            raise EngineCommandError(f"Failed to remove container(s): {', '.join(failed)}")
        return removed

    def status(self, container_name: str) -> ContainerStatus | None:
        self.engine.ensure_available()
        status = self.engine.container_status(container_name)
        if status is None:
            self.click_echo(f"{click.style('✗', fg='red')} Container '{container_name}' does not exist")
            return None
        icon = click.style("●", fg="green") if status.running else click.style("○", fg="red")
        self.click_echo(f"{icon} Container '{container_name}': {status.status}")
        return status

    def list_sessions(self) -> None:
        self.engine.ensure_available()
        self.click_echo(click.style("Claude sandbox containers:", bold=True))
        self.click_echo(self.engine.list_containers_table(), nl=False)

        self.click_echo(
            f"\n{click.style('Last used container', fg='cyan')}: "
            f"{click.style(self.store.last_session.current(), fg='green')}"
        )

        entries = self.store.folders.entries()
        if entries:
            self.click_echo(f"\n{click.style('Folder mappings:', bold=True)}")
            for entry in entries.values():
                folders = ", ".join(Path(folder).name or folder for folder in entry.folder_paths)
                self.click_echo(
                    f"  {click.style(entry.container_name, fg='green')} "
                    f"{click.style('←', fg='cyan')} [{click.style(folders, fg='blue')}]"
                )

        sessions = self.store.sessions.sessions()
        if sessions:
            self.click_echo(f"\n{click.style('Named sessions:', bold=True)}")
            for name, conversation_id in sessions.items():
                self.click_echo(
                    f"  {click.style(name, fg='green')} -> "
                    f"{click.style(short_conversation_id(conversation_id), fg='blue')}"
                )


@dataclass
class StateService:
    store: SandboxStore
    click_echo: Callable[..., None]
    click_confirm: Callable[[str], bool]

    def reset(self, *, force: bool = False) -> bool:
        root = self.store.paths.root
        if not force:
            self.click_echo(click.style("This will delete all Claude sandbox state and memory.", fg="yellow"))
            self.click_echo(f"Config directory: {root}")
            if not self.click_confirm("Continue?"):
                self.click_echo("Aborted.")
                return False
        if self.store.reset():
            LOGGER.info(
                "Removed sandbox state",
                extra={"component": "cli", "operation": "reset", "result": "removed"},
            )
            self.click_echo(f"{click.style('✓', fg='green')} State reset successfully")
            return True
        self.click_echo("No state to reset.")
        return False
