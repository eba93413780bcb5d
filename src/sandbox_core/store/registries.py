from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Iterable

from sandbox_core.errors import ConfigUnavailableError, RegistryCorruptError
from sandbox_core.naming import DEFAULT_CONTAINER_NAME, canonical_folder_paths, folder_key
from sandbox_core.paths import SandboxPaths
from sandbox_core.store.documents import JsonDocumentStore


LOGGER = logging.getLogger("claude_sandbox.store")


@dataclass(frozen=True)
class ContainerEntry:
    container_name: str
    folder_paths: tuple[str, ...]
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "container_name": self.container_name,
            "folder_paths": list(self.folder_paths),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, key: str, payload: Any) -> "ContainerEntry":
        if not isinstance(payload, dict):
            raise RegistryCorruptError(f"Folder registry entry {key!r} must be an object.")
        container_name = payload.get("container_name")
        folder_paths = payload.get("folder_paths")
        created_at = payload.get("created_at")
        if not isinstance(container_name, str) or not container_name:
            raise RegistryCorruptError(f"Folder registry entry {key!r} has no container_name.")
        if not isinstance(folder_paths, list) or not all(isinstance(item, str) for item in folder_paths):
            raise RegistryCorruptError(f"Folder registry entry {key!r} has invalid folder_paths.")
        if not isinstance(created_at, str):
            raise RegistryCorruptError(f"Folder registry entry {key!r} has invalid created_at.")
        return cls(container_name=container_name, folder_paths=tuple(folder_paths), created_at=created_at)


def _new_folder_registry() -> dict[str, Any]:
    return {"folders": {}}


def _validate_folder_registry(document: dict[str, Any]) -> None:
    folders = document.get("folders")
    if not isinstance(folders, dict):
        raise RegistryCorruptError("Folder registry must contain a 'folders' object.")
    for key, entry in folders.items():
        ContainerEntry.from_dict(key, entry)


def _new_sessions_registry() -> dict[str, Any]:
    return {"sessions": {}}


def _validate_sessions_registry(document: dict[str, Any]) -> None:
    sessions = document.get("sessions")
    if not isinstance(sessions, dict):
        raise RegistryCorruptError("Sessions registry must contain a 'sessions' object.")
    for name, conversation_id in sessions.items():
        if not isinstance(conversation_id, str):
            raise RegistryCorruptError(f"Named session {name!r} must map to a conversation id string.")


class LastSessionStore:
    def __init__(self, *, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigUnavailableError(f"Unable to read {self.path}: {exc}") from exc
        return value or None

    def current(self) -> str:
        return self.load() or DEFAULT_CONTAINER_NAME

    def save(self, container_name: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(container_name, encoding="utf-8")
        except OSError as exc:
            raise ConfigUnavailableError(f"Unable to write {self.path}: {exc}") from exc


class FolderRegistry:
    def __init__(self, *, documents: JsonDocumentStore) -> None:
        self._documents = documents

    def entries(self) -> dict[str, ContainerEntry]:
        folders = self._documents.load().get("folders") or {}
        return {key: ContainerEntry.from_dict(key, value) for key, value in folders.items()}

    def lookup_key(self, key: str) -> ContainerEntry | None:
        if not key:
            return None
        return self.entries().get(key)

    def register(
        self,
        container_name: str,
        folders: Iterable[str | Path],
        *,
        now: datetime | None = None,
    ) -> ContainerEntry:
        folder_list = list(folders)
        key = folder_key(folder_list)
        entry = ContainerEntry(
            container_name=container_name,
            folder_paths=tuple(str(path) for path in canonical_folder_paths(folder_list)),
            created_at=(now or datetime.now().astimezone()).isoformat(),
        )
        document = self._documents.load()
        folders_doc: dict[str, Any] = dict(document.get("folders") or {})
        # one key per container name
        stale_keys = [
            existing_key
            for existing_key, existing in folders_doc.items()
            if existing_key != key and existing.get("container_name") == container_name
        ]
        for stale_key in stale_keys:
            folders_doc.pop(stale_key, None)
        previous = folders_doc.get(key)
        if isinstance(previous, dict) and previous.get("container_name") not in (None, container_name):
            LOGGER.info(
                "Folder set re-registered; container %s is no longer tracked",
                previous.get("container_name"),
                extra={"component": "store", "operation": "register", "container": container_name, "result": "replaced"},
            )
        folders_doc[key] = entry.to_dict()
        document["folders"] = folders_doc
        self._documents.save(document)
        return entry


class SessionsRegistry:
    def __init__(self, *, documents: JsonDocumentStore) -> None:
        self._documents = documents

    def sessions(self) -> dict[str, str]:
        return dict(self._documents.load().get("sessions") or {})

    def get(self, name: str) -> str | None:
        return self.sessions().get(name)

    def bind(self, name: str, conversation_id: str) -> None:
        document = self._documents.load()
        sessions = dict(document.get("sessions") or {})
        sessions[name] = conversation_id
        document["sessions"] = sessions
        self._documents.save(document)


class SandboxStore:
    """Handle over every persisted registry under one configuration root."""

    def __init__(self, paths: SandboxPaths) -> None:
        self.paths = paths
        self.last_session = LastSessionStore(path=paths.last_session_file)
        self.folders = FolderRegistry(
            documents=JsonDocumentStore(
                document_file=paths.folder_registry_file,
                new_document_factory=_new_folder_registry,
                validator=_validate_folder_registry,
                lock=Lock(),
            )
        )
        self.sessions = SessionsRegistry(
            documents=JsonDocumentStore(
                document_file=paths.named_sessions_file,
                new_document_factory=_new_sessions_registry,
                validator=_validate_sessions_registry,
                lock=Lock(),
            )
        )

    def reset(self) -> bool:
        root = self.paths.root
        if not root.exists():
            return False
        try:
            shutil.rmtree(root)
        except OSError as exc:
            raise ConfigUnavailableError(f"Unable to remove {root}: {exc}") from exc
        return True
