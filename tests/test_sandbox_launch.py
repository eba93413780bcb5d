from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sandbox_core.errors import FolderUnavailableError
from sandbox_core.image import SANDBOX_DOCKERFILE, write_dockerfile
from sandbox_core.launch import (
    AgentExecPlan,
    compile_agent_exec_command,
    prepare_container_volumes,
    resolve_folder_mount,
    resolve_folder_mounts,
)
from sandbox_core.paths import SandboxPaths


def test_resolve_folder_mount_uses_basename(tmp_path: Path) -> None:
    app = tmp_path / "app"
    app.mkdir()

    mount = resolve_folder_mount(app)

    assert mount.host_path == app.resolve()
    assert mount.container_path == "/home/claude/workspace/app"
    assert mount.volume == f"{app.resolve()}:/home/claude/workspace/app"


def test_resolve_folder_mounts_rejects_missing_folder(tmp_path: Path) -> None:
    with pytest.raises(FolderUnavailableError, match="Cannot access folder"):
        resolve_folder_mounts([tmp_path / "missing"])


def test_prepare_container_volumes_seeds_shared_state(tmp_path: Path) -> None:
    paths = SandboxPaths(root=tmp_path / "state")
    app = tmp_path / "app"
    app.mkdir()

    volumes = prepare_container_volumes(paths, "claude-app", [resolve_folder_mount(app)])

    root = paths.root
    assert volumes == (
        f"{app.resolve()}:/home/claude/workspace/app",
        f"{root / '.claude'}:/home/claude/.claude",
        f"{root / 'containers' / 'claude-app' / 'conversations'}:/home/claude/.claude/projects",
        f"{root / '.claude.json'}:/home/claude/.claude.json",
        f"{root / '.claude.json.backup'}:/home/claude/.claude.json.backup",
        f"{root / '.config'}:/home/claude/.config",
    )
    assert paths.container_conversations_dir("claude-app").is_dir()
    assert json.loads(paths.shared_claude_json.read_text(encoding="utf-8")) == {}


def test_prepare_container_volumes_keeps_existing_credentials(tmp_path: Path) -> None:
    paths = SandboxPaths(root=tmp_path / "state")
    paths.ensure_root()
    paths.shared_claude_json.write_text('{"oauth": "kept"}', encoding="utf-8")

    prepare_container_volumes(paths, "claude-app", [])

    assert paths.shared_claude_json.read_text(encoding="utf-8") == '{"oauth": "kept"}'


@pytest.mark.parametrize(
    ("plan", "expected"),
    [
        (AgentExecPlan(), ["claude"]),
        (AgentExecPlan(continue_session=True), ["claude", "-c"]),
        (AgentExecPlan(resume="abc123"), ["claude", "-r", "abc123"]),
        (AgentExecPlan(resume=""), ["claude", "-r"]),
        (AgentExecPlan(continue_session=True, resume="abc123"), ["claude", "-c"]),
        (
            AgentExecPlan(prompt="fix the tests", dangerously_skip_permissions=True),
            ["claude", "--dangerously-skip-permissions", "fix the tests"],
        ),
    ],
)
def test_compile_agent_exec_command(plan: AgentExecPlan, expected: list[str]) -> None:
    assert compile_agent_exec_command(plan) == expected


def test_write_dockerfile_installs_claude_code(tmp_path: Path) -> None:
    paths = SandboxPaths(root=tmp_path / "state")

    dockerfile = write_dockerfile(paths)

    assert dockerfile == paths.dockerfile
    assert dockerfile.read_text(encoding="utf-8") == SANDBOX_DOCKERFILE
    assert "@anthropic-ai/claude-code" in SANDBOX_DOCKERFILE
