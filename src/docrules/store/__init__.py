"""Document lookup adapters for docrules."""

from .base import DocumentStore, LookupScope
from .memory import InMemoryDocumentStore
from .sqlite import SqliteDocumentStore

__all__ = [
    'DocumentStore',
    'LookupScope',
    'InMemoryDocumentStore',
    'SqliteDocumentStore',
]
