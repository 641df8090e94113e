"""
Local persistence for the APOD cache.

This package provides the SQLite store for entries and access events
and the media store images are exported into.
"""

from .apod_database import ApodDatabase
from .media_store import ApodStorageException, DirectoryMediaStore, MediaEntry, MediaStore

__all__ = [
    'ApodDatabase',
    'ApodStorageException',
    'DirectoryMediaStore',
    'MediaEntry',
    'MediaStore',
]
