"""
Data models for the APOD cache.

This module contains the data structures used throughout the library:
entries, access events and the derived statistics projection.
"""

from .apod_data import AccessEvent, ApodRecord, ApodWithStats, MediaType

__all__ = ["AccessEvent", "ApodRecord", "ApodWithStats", "MediaType"]
