from __future__ import annotations

from pathlib import Path

from sandbox_core.naming import (
    CONTAINER_PREFIX,
    canonicalize_folder,
    derive_container_name,
    expected_container_name,
    folder_key,
    sanitize_name,
)
from sandbox_core.store import SandboxStore


class TargetResolver:
    """Turn a folder path, folder name or container name into a container name.

    Order: last session, existing directory, literal ``claude*`` name,
    registered folder name, literal fallback.
    """

    def __init__(self, *, store: SandboxStore) -> None:
        self._store = store

    def resolve(self, target: str | None) -> str:
        if target is None:
            return self._store.last_session.current()

        path = Path(target)
        if path.is_dir():
            registered = self.lookup_folder_path(path)
            if registered:
                return registered
            return derive_container_name([path])

        if target.startswith(CONTAINER_PREFIX):
            return target

        registered = self.lookup_folder_name(target)
        if registered:
            return registered
        return target

    def lookup_folder_path(self, folder: str | Path) -> str | None:
        canonical = canonicalize_folder(folder)
        if canonical is None:
            return None
        entry = self._store.folders.lookup_key(folder_key([canonical]))
        if entry is not None:
            return entry.container_name
        canonical_str = str(canonical)
        for entry in self._store.folders.entries().values():
            if canonical_str in entry.folder_paths:
                return entry.container_name
        return None

    def lookup_folder_name(self, name: str) -> str | None:
        sanitized = sanitize_name(name)
        if not sanitized:
            return None
        expected = expected_container_name(name)
        for entry in self._store.folders.entries().values():
            for folder_path in entry.folder_paths:
                basename = Path(folder_path).name
                if basename == name or sanitize_name(basename) == sanitized:
                    return entry.container_name
            if entry.container_name == expected or entry.container_name.startswith(expected):
                return entry.container_name
        return None
