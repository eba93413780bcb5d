from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sandbox_core.naming import folder_key
from sandbox_core.paths import SandboxPaths
from sandbox_core.store import ContainerEntry, JsonDocumentStore, SandboxStore


def _store(tmp_path: Path) -> SandboxStore:
    return SandboxStore(SandboxPaths(root=tmp_path / "state"))


def _folder(tmp_path: Path, name: str) -> Path:
    folder = tmp_path / name
    folder.mkdir()
    return folder


def test_last_session_defaults_to_claude(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert store.last_session.load() is None
    assert store.last_session.current() == "claude"

    store.last_session.save("claude-app")
    assert store.last_session.current() == "claude-app"
    assert store.paths.last_session_file.read_text(encoding="utf-8") == "claude-app"


def test_last_session_blank_file_falls_back_to_default(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.paths.ensure_root()
    store.paths.last_session_file.write_text("  \n", encoding="utf-8")

    assert store.last_session.current() == "claude"


def test_register_writes_registry_document(tmp_path: Path) -> None:
    store = _store(tmp_path)
    app = _folder(tmp_path, "app")
    now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    entry = store.folders.register("claude-app", [app], now=now)

    assert entry == ContainerEntry(
        container_name="claude-app",
        folder_paths=(str(app.resolve()),),
        created_at="2026-01-02T03:04:05+00:00",
    )
    persisted = json.loads(store.paths.folder_registry_file.read_text(encoding="utf-8"))
    assert persisted == {
        "folders": {
            str(app.resolve()): {
                "container_name": "claude-app",
                "folder_paths": [str(app.resolve())],
                "created_at": "2026-01-02T03:04:05+00:00",
            }
        }
    }


def test_register_multi_folder_key_is_order_independent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    a = _folder(tmp_path, "a")
    b = _folder(tmp_path, "b")

    store.folders.register("claude-b-a", [b, a])

    entry = store.folders.lookup_key(folder_key([a, b]))
    assert entry is not None
    assert entry.container_name == "claude-b-a"
    assert entry.folder_paths == (str(b.resolve()), str(a.resolve()))


def test_register_same_folders_overwrites_previous_container(tmp_path: Path) -> None:
    store = _store(tmp_path)
    app = _folder(tmp_path, "app")

    store.folders.register("claude-app", [app])
    store.folders.register("claude-custom", [app])

    entries = store.folders.entries()
    assert list(entries) == [str(app.resolve())]
    # the earlier container is no longer tracked by any entry
    assert all(entry.container_name != "claude-app" for entry in entries.values())


def test_register_keeps_one_key_per_container_name(tmp_path: Path) -> None:
    store = _store(tmp_path)
    app = _folder(tmp_path, "app")
    lib = _folder(tmp_path, "lib")

    store.folders.register("claude-app", [app])
    store.folders.register("claude-app", [app, lib])

    entries = store.folders.entries()
    assert list(entries) == [folder_key([app, lib])]


def test_corrupt_registry_is_preserved_and_treated_as_empty(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.paths.ensure_root()
    store.paths.folder_registry_file.write_text("{not json", encoding="utf-8")

    assert store.folders.entries() == {}

    preserved = list(store.paths.root.glob("folder_registry.json.corrupt-*"))
    assert len(preserved) == 1
    assert preserved[0].read_text(encoding="utf-8") == "{not json"
    assert not store.paths.folder_registry_file.exists()


def test_registry_with_wrong_shape_is_recovered(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.paths.ensure_root()
    store.paths.folder_registry_file.write_text(
        json.dumps({"folders": {"/x": {"container_name": "claude-x"}}}),
        encoding="utf-8",
    )

    assert store.folders.entries() == {}
    app = _folder(tmp_path, "app")
    store.folders.register("claude-app", [app])
    assert list(store.folders.entries()) == [str(app.resolve())]


def test_sessions_registry_binds_and_overwrites(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert store.sessions.get("feature") is None
    store.sessions.bind("feature", "conv-1")
    store.sessions.bind("feature", "conv-2")
    store.sessions.bind("bugfix", "conv-3")

    assert store.sessions.sessions() == {"feature": "conv-2", "bugfix": "conv-3"}
    persisted = json.loads(store.paths.named_sessions_file.read_text(encoding="utf-8"))
    assert persisted == {"sessions": {"feature": "conv-2", "bugfix": "conv-3"}}


def test_corrupt_sessions_registry_is_recovered(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.paths.ensure_root()
    store.paths.named_sessions_file.write_text(json.dumps({"sessions": ["bad"]}), encoding="utf-8")

    assert store.sessions.get("feature") is None
    assert list(store.paths.root.glob("named_sessions.json.corrupt-*"))


def test_document_store_returns_fresh_document_per_load(tmp_path: Path) -> None:
    documents = JsonDocumentStore(document_file=tmp_path / "doc.json", new_document_factory=lambda: {"items": {}})

    first = documents.load()
    first["items"]["a"] = 1

    assert documents.load() == {"items": {}}


def test_reset_removes_state_root(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.last_session.save("claude-app")

    assert store.reset() is True
    assert not store.paths.root.exists()
    assert store.reset() is False


@pytest.mark.parametrize("payload", ["[]", '"text"', "42"])
def test_non_object_documents_are_recovered(tmp_path: Path, payload: str) -> None:
    store = _store(tmp_path)
    store.paths.ensure_root()
    store.paths.named_sessions_file.write_text(payload, encoding="utf-8")

    assert store.sessions.sessions() == {}
