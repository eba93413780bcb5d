from __future__ import annotations

import string
from pathlib import Path
from typing import Iterable

from sandbox_core.errors import NoDerivableNameError


CONTAINER_PREFIX = "claude"
DEFAULT_CONTAINER_NAME = "claude"
MAX_CONTAINER_NAME_LENGTH = 64
FOLDER_KEY_SEPARATOR = ":"
_ALLOWED_NAME_CHARS = frozenset(string.ascii_lowercase + string.digits + "-_")


def sanitize_name(value: str) -> str:
    return "".join(char for char in str(value or "").lower() if char in _ALLOWED_NAME_CHARS)


def canonicalize_folder(folder: str | Path) -> Path | None:
    try:
        return Path(folder).expanduser().resolve(strict=True)
    except (OSError, RuntimeError):
        return None


def canonical_folder_paths(folders: Iterable[str | Path]) -> list[Path]:
    """Canonical paths in input order; folders that cannot be resolved are skipped."""
    resolved: list[Path] = []
    for folder in folders:
        canonical = canonicalize_folder(folder)
        if canonical is not None:
            resolved.append(canonical)
    return resolved


def expected_container_name(folder_name: str) -> str:
    return f"{CONTAINER_PREFIX}-{sanitize_name(folder_name)}"


def derive_container_name(folders: Iterable[str | Path]) -> str:
    """Build a container name from folder basenames.

    Names keep the input order, so ``[a, b]`` and ``[b, a]`` give different
    containers even though both share one folder registry key.
    """
    folder_list = list(folders)
    names = [sanitize_name(path.name) for path in canonical_folder_paths(folder_list)]
    names = [name for name in names if name]
    if not names:
        rendered = ", ".join(str(folder) for folder in folder_list) or "<none>"
        raise NoDerivableNameError(f"Could not derive container name from folders: {rendered}")
    name = f"{CONTAINER_PREFIX}-{'-'.join(names)}"
    return name[:MAX_CONTAINER_NAME_LENGTH]


def folder_key(folders: Iterable[str | Path]) -> str:
    paths = sorted(str(path) for path in canonical_folder_paths(folders))
    return FOLDER_KEY_SEPARATOR.join(paths)
