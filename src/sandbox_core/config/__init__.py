from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11
    import tomli as tomllib

from sandbox_core.errors import ConfigError


LOGGER = logging.getLogger("claude_sandbox.config")

CONFIG_FILE_NAME = "config.toml"
_SECTION_KEYS = ("engine", "container", "logging")

DEFAULT_ENGINE_BINARY = "docker"
DEFAULT_IMAGE_NAME = "claude-code-sandbox"
DEFAULT_NETWORK = "bridge"
DEFAULT_SETTLE_SECONDS = 0.5
DEFAULT_PASSTHROUGH_ENV = ("ANTHROPIC_API_KEY", "TERM=xterm-256color")
DEFAULT_AGENT_COMMAND = "claude"
DEFAULT_SHELL_COMMAND = "bash"
DEFAULT_CONVERSATIONS_PATH = "/home/claude/.claude/projects"


def _ensure_dict(value: object, *, label: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a table/object.")
    return dict(value)


def _ensure_str(value: object, *, label: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label} must be a non-empty string.")
    return value.strip()


def _ensure_optional_str(value: object, *, label: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string.")
    return value.strip() or None


def _ensure_non_negative_float(value: object, *, label: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{label} must be a non-negative number.")
    if value < 0:
        raise ConfigError(f"{label} must be a non-negative number.")
    return float(value)


def _ensure_str_tuple(value: object, *, label: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{label} must be a list of strings.")
    return tuple(item.strip() for item in value if item.strip())


@dataclass(frozen=True)
class EngineConfig:
    binary: str = DEFAULT_ENGINE_BINARY
    image: str = DEFAULT_IMAGE_NAME
    network: str = DEFAULT_NETWORK
    settle_seconds: float = DEFAULT_SETTLE_SECONDS


@dataclass(frozen=True)
class ContainerConfig:
    memory: str | None = None
    cpus: str | None = None
    passthrough_env: tuple[str, ...] = DEFAULT_PASSTHROUGH_ENV
    agent_command: str = DEFAULT_AGENT_COMMAND
    shell_command: str = DEFAULT_SHELL_COMMAND
    conversations_path: str = DEFAULT_CONVERSATIONS_PATH


@dataclass(frozen=True)
class LoggingConfig:
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SandboxConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    container: ContainerConfig = field(default_factory=ContainerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | dict[str, Any]) -> "SandboxConfig":
        if not isinstance(payload, Mapping):
            raise ConfigError("Config payload root must be a table/object.")

        raw = dict(payload)
        engine = _parse_engine(raw)
        container = _parse_container(raw)
        logging_config = LoggingConfig(values=_ensure_dict(raw.get("logging"), label="section 'logging'"))
        unknown = sorted(str(key) for key in raw if key not in _SECTION_KEYS)
        if unknown:
            LOGGER.warning(
                "Ignoring unknown config sections: %s",
                ", ".join(unknown),
                extra={"component": "config", "operation": "load", "result": "ignored"},
            )
        return cls(engine=engine, container=container, logging=logging_config)

    @classmethod
    def from_toml_path(cls, path: str | Path) -> "SandboxConfig":
        config_path = Path(path)
        try:
            raw = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Unable to read config file {config_path}: {exc}") from exc
        try:
            parsed = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
        return cls.from_dict(parsed)


def _parse_engine(raw_root: dict[str, Any]) -> EngineConfig:
    engine_raw = _ensure_dict(raw_root.get("engine"), label="section 'engine'")
    return EngineConfig(
        binary=_ensure_str(engine_raw.get("binary"), label="engine.binary", default=DEFAULT_ENGINE_BINARY),
        image=_ensure_str(engine_raw.get("image"), label="engine.image", default=DEFAULT_IMAGE_NAME),
        network=_ensure_str(engine_raw.get("network"), label="engine.network", default=DEFAULT_NETWORK),
        settle_seconds=_ensure_non_negative_float(
            engine_raw.get("settle_seconds"),
            label="engine.settle_seconds",
            default=DEFAULT_SETTLE_SECONDS,
        ),
    )


def _parse_container(raw_root: dict[str, Any]) -> ContainerConfig:
    container_raw = _ensure_dict(raw_root.get("container"), label="section 'container'")
    return ContainerConfig(
        memory=_ensure_optional_str(container_raw.get("memory"), label="container.memory"),
        cpus=_ensure_optional_str(container_raw.get("cpus"), label="container.cpus"),
        passthrough_env=_ensure_str_tuple(
            container_raw.get("passthrough_env"),
            label="container.passthrough_env",
            default=DEFAULT_PASSTHROUGH_ENV,
        ),
        agent_command=_ensure_str(
            container_raw.get("agent_command"),
            label="container.agent_command",
            default=DEFAULT_AGENT_COMMAND,
        ),
        shell_command=_ensure_str(
            container_raw.get("shell_command"),
            label="container.shell_command",
            default=DEFAULT_SHELL_COMMAND,
        ),
        conversations_path=_ensure_str(
            container_raw.get("conversations_path"),
            label="container.conversations_path",
            default=DEFAULT_CONVERSATIONS_PATH,
        ),
    )


def load_sandbox_config(path: str | Path) -> SandboxConfig:
    """Load ``config.toml``; a missing file yields the built-in defaults."""
    config_path = Path(path)
    if not config_path.exists():
        return SandboxConfig()
    return SandboxConfig.from_toml_path(config_path)


def load_sandbox_config_dict(payload: Mapping[str, Any] | dict[str, Any]) -> SandboxConfig:
    return SandboxConfig.from_dict(payload)


__all__ = [
    "CONFIG_FILE_NAME",
    "ContainerConfig",
    "DEFAULT_AGENT_COMMAND",
    "DEFAULT_CONVERSATIONS_PATH",
    "DEFAULT_ENGINE_BINARY",
    "DEFAULT_IMAGE_NAME",
    "DEFAULT_NETWORK",
    "DEFAULT_PASSTHROUGH_ENV",
    "DEFAULT_SETTLE_SECONDS",
    "DEFAULT_SHELL_COMMAND",
    "EngineConfig",
    "LoggingConfig",
    "SandboxConfig",
    "load_sandbox_config",
    "load_sandbox_config_dict",
]
