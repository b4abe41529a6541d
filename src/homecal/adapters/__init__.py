"""Adapters - I/O implementations of ports."""

from .firestore_rest import FirestoreAdapter
from .json_store import JsonDocumentStore
from .file_preferences import FilePreferenceStore

__all__ = [
    "FirestoreAdapter",
    "JsonDocumentStore",
    "FilePreferenceStore",
]
