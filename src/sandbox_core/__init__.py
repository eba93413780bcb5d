from __future__ import annotations

from .config import SandboxConfig, load_sandbox_config, load_sandbox_config_dict
from .errors import (
    ConfigError,
    ConfigUnavailableError,
    ContainerMissingError,
    ContainerNotRunningError,
    EngineCommandError,
    EngineUnreachableError,
    FolderUnavailableError,
    InvalidPortSpecError,
    NoDerivableNameError,
    RegistryCorruptError,
    SessionNotFoundError,
    TypedSandboxError,
)
from .naming import derive_container_name, folder_key, sanitize_name
from .paths import SandboxPaths, resolve_config_root, resolve_sandbox_paths
from .ports import normalize_port_mapping

__all__ = [
    "ConfigError",
    "ConfigUnavailableError",
    "ContainerMissingError",
    "ContainerNotRunningError",
    "EngineCommandError",
    "EngineUnreachableError",
    "FolderUnavailableError",
    "InvalidPortSpecError",
    "NoDerivableNameError",
    "RegistryCorruptError",
    "SandboxConfig",
    "SandboxPaths",
    "SessionNotFoundError",
    "TypedSandboxError",
    "derive_container_name",
    "folder_key",
    "load_sandbox_config",
    "load_sandbox_config_dict",
    "normalize_port_mapping",
    "resolve_config_root",
    "resolve_sandbox_paths",
    "sanitize_name",
]
