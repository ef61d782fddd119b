"""Sample and result persistence."""

from .base import ResultStore, SampleStore
from .memory import InMemoryResultStore, InMemorySampleStore

__all__ = ["ResultStore", "SampleStore", "InMemoryResultStore", "InMemorySampleStore"]
