"""
Storage backends for reports, citizens and their trails.
"""

from .base import Session, Storage, run_post_commit_hooks
from .memory import MemoryStorage
from .postgres import PostgresStorage

__all__ = [
    "Session",
    "Storage",
    "run_post_commit_hooks",
    "MemoryStorage",
    "PostgresStorage",
]
