from __future__ import annotations

import logging
from typing import Iterable, Protocol

from sandbox_core.config import DEFAULT_CONVERSATIONS_PATH
from sandbox_core.engine import DirectoryEntry
from sandbox_core.errors import TypedSandboxError


LOGGER = logging.getLogger("claude_sandbox.detector")

# Transcripts live at <projects>/<project-slug>/<conversation-id>.jsonl.
TRANSCRIPT_SUFFIX = ".jsonl"
TRANSCRIPT_DEPTH = 2


class DirectoryLister(Protocol):
    def list_entries(
        self,
        name: str,
        path: str,
        *,
        entry_type: str = "d",
        depth: int = 1,
        pattern: str | None = None,
    ) -> list[DirectoryEntry]: ...


def select_latest_conversation(entries: Iterable[DirectoryEntry]) -> str | None:
    """Newest entry wins; equal timestamps fall back to the greater name."""
    latest: DirectoryEntry | None = None
    for entry in entries:
        if not entry.name:
            continue
        if latest is None or (entry.modified_at, entry.name) > (latest.modified_at, latest.name):
            latest = entry
    return latest.name if latest is not None else None


def conversation_entries(entries: Iterable[DirectoryEntry]) -> list[DirectoryEntry]:
    """Map transcript files to entries named by their conversation id."""
    conversations: list[DirectoryEntry] = []
    for entry in entries:
        if not entry.name.endswith(TRANSCRIPT_SUFFIX):
            continue
        conversation_id = entry.name[: -len(TRANSCRIPT_SUFFIX)]
        if conversation_id:
            conversations.append(DirectoryEntry(name=conversation_id, modified_at=entry.modified_at))
    return conversations


class ConversationDetector:
    def __init__(self, *, lister: DirectoryLister, conversations_path: str = DEFAULT_CONVERSATIONS_PATH) -> None:
        self._lister = lister
        self._conversations_path = conversations_path

    def detect(self, container_name: str) -> str | None:
        try:
            entries = self._lister.list_entries(
                container_name,
                self._conversations_path,
                entry_type="f",
                depth=TRANSCRIPT_DEPTH,
                pattern=f"*{TRANSCRIPT_SUFFIX}",
            )
        except TypedSandboxError as exc:
            LOGGER.warning(
                "Conversation listing failed: %s",
                exc,
                extra={
                    "component": "detector",
                    "operation": "detect",
                    "container": container_name,
                    "result": "unreachable",
                    "error_class": exc.error_code,
                },
            )
            return None
        conversation_id = select_latest_conversation(conversation_entries(entries))
        LOGGER.debug(
            "Detected conversation %s",
            conversation_id or "<none>",
            extra={
                "component": "detector",
                "operation": "detect",
                "container": container_name,
                "result": "found" if conversation_id else "empty",
            },
        )
        return conversation_id
