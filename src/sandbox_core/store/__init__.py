from sandbox_core.store.documents import JsonDocumentStore
from sandbox_core.store.registries import (
    ContainerEntry,
    FolderRegistry,
    LastSessionStore,
    SandboxStore,
    SessionsRegistry,
)

__all__ = [
    "ContainerEntry",
    "FolderRegistry",
    "JsonDocumentStore",
    "LastSessionStore",
    "SandboxStore",
    "SessionsRegistry",
]
