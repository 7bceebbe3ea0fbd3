"""Backends for the versioned task pointer."""

from reftask.refstore.base import AtomicStore
from reftask.refstore.filestore import FileStore
from reftask.refstore.gitref import GitRefStore
from reftask.refstore.memory import MemoryStore

__all__ = ["AtomicStore", "FileStore", "GitRefStore", "MemoryStore"]
