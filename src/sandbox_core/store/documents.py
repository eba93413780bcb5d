from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable

from sandbox_core.errors import ConfigUnavailableError, RegistryCorruptError


LOGGER = logging.getLogger("claude_sandbox.store")


class JsonDocumentStore:
    """Read-modify-write access to one JSON document on disk.

    A malformed document is moved aside and the store answers with a fresh
    empty document instead of failing, so a bad manual edit never blocks the
    tool.
    """

    def __init__(
        self,
        *,
        document_file: Path,
        new_document_factory: Callable[[], dict[str, Any]],
        validator: Callable[[dict[str, Any]], None] | None = None,
        lock: Lock | None = None,
    ) -> None:
        self.document_file = Path(document_file)
        self._new_document_factory = new_document_factory
        self._validator = validator
        self._lock = lock or Lock()

    def load(self) -> dict[str, Any]:
        with self._lock:
            if not self.document_file.exists():
                return self._new_document_factory()
            try:
                return self._load_locked()
            except RegistryCorruptError as exc:
                preserved_path = self._preserve_corrupt_document_locked()
                LOGGER.warning(
                    "Treating %s as empty; corrupt copy kept at %s: %s",
                    self.document_file,
                    preserved_path,
                    exc,
                    extra={
                        "component": "store",
                        "operation": "load",
                        "result": "recovered",
                        "error_class": exc.error_code,
                    },
                )
                return self._new_document_factory()

    def save(self, document: dict[str, Any]) -> None:
        with self._lock:
            try:
                self.document_file.parent.mkdir(parents=True, exist_ok=True)
                with self.document_file.open("w", encoding="utf-8") as fp:
                    json.dump(document, fp, indent=2)
            except OSError as exc:
                raise ConfigUnavailableError(f"Unable to write {self.document_file}: {exc}") from exc

    def _load_locked(self) -> dict[str, Any]:
        try:
            raw = self.document_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigUnavailableError(f"Unable to read {self.document_file}: {exc}") from exc
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise RegistryCorruptError(f"{self.document_file.name} is not valid JSON: {exc}") from exc
        if not isinstance(loaded, dict):
            raise RegistryCorruptError(f"{self.document_file.name} must contain a JSON object.")
        if self._validator is not None:
            self._validator(loaded)
        return loaded

    def _preserve_corrupt_document_locked(self) -> Path | None:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        base_name = f"{self.document_file.name}.corrupt-{timestamp}"
        preserved_path = self.document_file.with_name(base_name)
        suffix = 1
        while preserved_path.exists():
            preserved_path = self.document_file.with_name(f"{base_name}.{suffix}")
            suffix += 1
        try:
            self.document_file.replace(preserved_path)
        except OSError:
            LOGGER.warning(
                "Unable to move corrupt %s aside",
                self.document_file,
                extra={"component": "store", "operation": "preserve_corrupt", "result": "failed"},
            )
            return None
        return preserved_path
