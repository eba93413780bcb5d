from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from sandbox_core.config import CONFIG_FILE_NAME
from sandbox_core.errors import ConfigUnavailableError


CONFIG_ROOT_ENV = "CLAUDE_SANDBOX_CONFIG"
CONFIG_ROOT_DIR_NAME = ".claude-sandbox"
LAST_SESSION_FILE_NAME = "last_session"
FOLDER_REGISTRY_FILE_NAME = "folder_registry.json"
NAMED_SESSIONS_FILE_NAME = "named_sessions.json"
CONTAINERS_DIR_NAME = "containers"
CONTAINER_CONVERSATIONS_DIR_NAME = "conversations"
DOCKERFILE_NAME = "Dockerfile"
SHARED_CLAUDE_DIR_NAME = ".claude"
SHARED_CONFIG_DIR_NAME = ".config"
SHARED_CLAUDE_JSON_NAME = ".claude.json"
SHARED_CLAUDE_JSON_BACKUP_NAME = ".claude.json.backup"


@dataclass(frozen=True)
class SandboxPaths:
    root: Path

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    @property
    def last_session_file(self) -> Path:
        return self.root / LAST_SESSION_FILE_NAME

    @property
    def folder_registry_file(self) -> Path:
        return self.root / FOLDER_REGISTRY_FILE_NAME

    @property
    def named_sessions_file(self) -> Path:
        return self.root / NAMED_SESSIONS_FILE_NAME

    @property
    def dockerfile(self) -> Path:
        return self.root / DOCKERFILE_NAME

    @property
    def shared_claude_dir(self) -> Path:
        return self.root / SHARED_CLAUDE_DIR_NAME

    @property
    def shared_config_dir(self) -> Path:
        return self.root / SHARED_CONFIG_DIR_NAME

    @property
    def shared_claude_json(self) -> Path:
        return self.root / SHARED_CLAUDE_JSON_NAME

    @property
    def shared_claude_json_backup(self) -> Path:
        return self.root / SHARED_CLAUDE_JSON_BACKUP_NAME

    def container_dir(self, container_name: str) -> Path:
        return self.root / CONTAINERS_DIR_NAME / container_name

    def container_conversations_dir(self, container_name: str) -> Path:
        return self.container_dir(container_name) / CONTAINER_CONVERSATIONS_DIR_NAME

    def ensure_root(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigUnavailableError(f"Unable to create config directory {self.root}: {exc}") from exc
        return self.root


def default_config_root(home: Path | None = None) -> Path:
    try:
        resolved_home = (home or Path.home()).expanduser()
    except RuntimeError as exc:
        raise ConfigUnavailableError(f"Could not determine home directory: {exc}") from exc
    return resolved_home / CONFIG_ROOT_DIR_NAME


def resolve_config_root(
    override: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> Path:
    explicit = str(override or "").strip()
    if explicit:
        return Path(explicit).expanduser()
    env = os.environ if environ is None else environ
    configured = str(env.get(CONFIG_ROOT_ENV) or "").strip()
    if configured:
        return Path(configured).expanduser()
    return default_config_root(home)


def resolve_sandbox_paths(
    override: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> SandboxPaths:
    return SandboxPaths(root=resolve_config_root(override, environ=environ, home=home))
