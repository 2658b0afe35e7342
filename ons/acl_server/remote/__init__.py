"""
External record store clients.

Available implementations:
- HttpRecordStore: talks to a record store over HTTP
- InMemoryRecordStore: in-process store for tests and local development
"""

from .base import RecordInput, RecordStore, RemoteDomain, RemoteRecord, StoreResponse, is_duplicate_entry
from .http import HttpRecordStore
from .memory import InMemoryRecordStore, StoreCall

__all__ = [
    "HttpRecordStore",
    "InMemoryRecordStore",
    "RecordInput",
    "RecordStore",
    "RemoteDomain",
    "RemoteRecord",
    "StoreCall",
    "StoreResponse",
    "is_duplicate_entry",
]
