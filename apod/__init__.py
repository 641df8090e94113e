"""
APOD cache library

Fetches NASA's Astronomy Picture of the Day, caches entries in a local
SQLite database, keeps a per-entry access history and saves images locally.

Features:
- Cache-aside lookup of entries by date
- View statistics derived from the access log
- Local image cache with remote URL fallback
- High-resolution image export
"""

from version import __version__

__all__ = ["__version__"]
