"""Record store interface and implementations."""

from .base import RecordStore
from .memory import InMemoryRecordStore

__all__ = ["InMemoryRecordStore", "RecordStore"]
