"""
Persistence port for the settlement services plus an in-memory implementation.
"""

from .base import StoragePort, StorageError, RecordNotFoundError
from .memory import InMemoryStorage

__all__ = [
    "StoragePort",
    "StorageError",
    "RecordNotFoundError",
    "InMemoryStorage",
]
