from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sandbox_core import ConfigError
from sandbox_core.config import (
    DEFAULT_PASSTHROUGH_ENV,
    LOGGER as config_logger,
    SandboxConfig,
    load_sandbox_config,
    load_sandbox_config_dict,
)
from sandbox_core.paths import CONFIG_ROOT_ENV, resolve_config_root, resolve_sandbox_paths


def test_sandbox_config_defaults() -> None:
    config = load_sandbox_config_dict({})

    assert isinstance(config, SandboxConfig)
    assert config.engine.binary == "docker"
    assert config.engine.image == "claude-code-sandbox"
    assert config.engine.network == "bridge"
    assert config.engine.settle_seconds == 0.5
    assert config.container.memory is None
    assert config.container.cpus is None
    assert config.container.passthrough_env == DEFAULT_PASSTHROUGH_ENV
    assert config.container.agent_command == "claude"
    assert config.container.shell_command == "bash"
    assert config.container.conversations_path == "/home/claude/.claude/projects"
    assert config.logging.values == {}


def test_sandbox_config_section_parsing() -> None:
    config = load_sandbox_config_dict(
        {
            "engine": {"binary": "podman", "image": "my-sandbox", "settle_seconds": 0},
            "container": {"memory": "4g", "cpus": 2, "passthrough_env": ["ANTHROPIC_API_KEY", "GH_TOKEN"]},
            "logging": {"level": "debug", "domains": {"store": "info"}},
        }
    )

    assert config.engine.binary == "podman"
    assert config.engine.image == "my-sandbox"
    assert config.engine.settle_seconds == 0.0
    assert config.container.memory == "4g"
    assert config.container.cpus == "2"
    assert config.container.passthrough_env == ("ANTHROPIC_API_KEY", "GH_TOKEN")
    assert config.logging.values["domains"] == {"store": "info"}


class _Records(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def config_warnings() -> Iterator[list[logging.LogRecord]]:
    handler = _Records()
    previous_level = config_logger.level
    config_logger.addHandler(handler)
    config_logger.setLevel(logging.WARNING)
    yield handler.records
    config_logger.removeHandler(handler)
    config_logger.setLevel(previous_level)


def test_unknown_config_sections_are_ignored_with_warning(config_warnings: list[logging.LogRecord]) -> None:
    config = load_sandbox_config_dict({"engine": {"image": "my-sandbox"}, "extra": {"note": "x"}, "agents": []})

    assert config.engine.image == "my-sandbox"
    assert not hasattr(config, "extras")
    assert [record.getMessage() for record in config_warnings] == ["Ignoring unknown config sections: agents, extra"]


def test_known_config_sections_do_not_warn(config_warnings: list[logging.LogRecord]) -> None:
    load_sandbox_config_dict({"engine": {}, "container": {}, "logging": {}})

    assert config_warnings == []


@pytest.mark.parametrize(
    "payload",
    [
        {"engine": "docker"},
        {"engine": {"binary": ""}},
        {"engine": {"settle_seconds": -1}},
        {"engine": {"settle_seconds": True}},
        {"container": {"passthrough_env": "ANTHROPIC_API_KEY"}},
        {"container": {"memory": ["4g"]}},
        {"logging": []},
    ],
)
def test_sandbox_config_rejects_invalid_sections(payload: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        load_sandbox_config_dict(payload)


def test_load_sandbox_config_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = load_sandbox_config(tmp_path / "config.toml")
    assert config == SandboxConfig()


def test_load_sandbox_config_reads_toml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        '[engine]\nnetwork = "host"\n\n[container]\nmemory = "8g"\n\n[logging]\nlevel = "info"\n',
        encoding="utf-8",
    )

    config = load_sandbox_config(config_file)

    assert config.engine.network == "host"
    assert config.container.memory == "8g"
    assert config.logging.values == {"level": "info"}


def test_load_sandbox_config_rejects_invalid_toml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[engine\nbinary = ", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_sandbox_config(config_file)


def test_config_root_prefers_override_then_environment(tmp_path: Path) -> None:
    env = {CONFIG_ROOT_ENV: str(tmp_path / "from-env")}

    assert resolve_config_root(tmp_path / "explicit", environ=env) == tmp_path / "explicit"
    assert resolve_config_root(None, environ=env) == tmp_path / "from-env"
    assert resolve_config_root(None, environ={}, home=tmp_path) == tmp_path / ".claude-sandbox"


def test_sandbox_paths_layout(tmp_path: Path) -> None:
    paths = resolve_sandbox_paths(tmp_path / "state", environ={})

    assert paths.last_session_file == tmp_path / "state" / "last_session"
    assert paths.folder_registry_file == tmp_path / "state" / "folder_registry.json"
    assert paths.named_sessions_file == tmp_path / "state" / "named_sessions.json"
    assert paths.container_conversations_dir("claude-app") == (
        tmp_path / "state" / "containers" / "claude-app" / "conversations"
    )
    assert paths.shared_claude_json == tmp_path / "state" / ".claude.json"
