"""
Infrastructure Persistence Package
==================================
Durable storage for controller snapshots.
"""

from .json_store import FileLock, JsonFileStore

__all__ = ["FileLock", "JsonFileStore"]
