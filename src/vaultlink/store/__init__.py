"""Document store collaborators."""

from vaultlink.store.base import (
    DocumentNotFoundError,
    DocumentStore,
    Entry,
    FileContent,
    Heading,
    Metadata,
)
from vaultlink.store.local import LocalDocumentStore

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "Entry",
    "FileContent",
    "Heading",
    "LocalDocumentStore",
    "Metadata",
]
