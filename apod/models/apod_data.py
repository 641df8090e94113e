"""
APOD data models.

This module contains immutable data classes for Astronomy Picture of the Day
entries, the access log, and the derived per-entry statistics projection.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

APOD_DATE_FORMAT = "%Y-%m-%d"
APOD_FIRST_DATE = date(1995, 6, 16)


class MediaType(Enum):
    """Enumeration of APOD media types."""
    IMAGE = "image"
    VIDEO = "video"
    OTHER = "other"

    @classmethod
    def from_api(cls, value: Optional[str]) -> "MediaType":
        """Map the API's ``media_type`` string onto the enum."""
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class ApodRecord:
    """
    Immutable Astronomy Picture of the Day entry.

    Identity is the calendar date. The ``id`` is only populated once the
    record has been persisted; use :meth:`with_id` to obtain the stored copy.
    """
    date: date
    title: str
    explanation: str
    media_type: MediaType
    url: str
    hd_url: Optional[str] = None
    copyright: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        """Validate record data on creation."""
        if not isinstance(self.date, date) or isinstance(self.date, datetime):
            raise ValueError("APOD date must be a calendar date")

        if not self.title.strip():
            raise ValueError("APOD title cannot be empty")

        if not self._is_valid_url(self.url):
            raise ValueError(f"Invalid APOD URL: {self.url}")

        if self.hd_url and not self._is_valid_url(self.hd_url):
            raise ValueError(f"Invalid APOD HD URL: {self.hd_url}")

    @staticmethod
    def _is_valid_url(url: Optional[str]) -> bool:
        """Validate URL format."""
        if not url:
            return False
        try:
            result = urlparse(url)
            return all([result.scheme, result.netloc])
        except Exception:
            return False

    @property
    def is_image(self) -> bool:
        """Check if the entry is a still image."""
        return self.media_type == MediaType.IMAGE

    @property
    def is_persisted(self) -> bool:
        """Check if the record has been assigned a store id."""
        return self.id is not None

    @property
    def best_url(self) -> str:
        """Get the high-resolution URL when present, else the standard URL."""
        return self.hd_url or self.url

    @property
    def date_string(self) -> str:
        """Get the date formatted the way the API expects it."""
        return self.date.strftime(APOD_DATE_FORMAT)

    def with_id(self, record_id: int) -> "ApodRecord":
        """Return a copy of this record carrying the generated store id."""
        return replace(self, id=record_id)

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "ApodRecord":
        """
        Create a record from an APOD API JSON payload.

        Args:
            data: Decoded JSON object returned by the APOD endpoint

        Returns:
            ApodRecord: Unpersisted record

        Raises:
            ValueError: If the payload lacks a date, title or URL
        """
        date_str = data.get("date")
        if not date_str:
            raise ValueError("APOD payload has no date")
        record_date = datetime.strptime(date_str, APOD_DATE_FORMAT).date()

        media_type = MediaType.from_api(data.get("media_type"))
        url = data.get("url")
        if not url and media_type == MediaType.VIDEO:
            url = data.get("thumbnail_url")

        return cls(
            date=record_date,
            title=(data.get("title") or "").strip(),
            explanation=data.get("explanation") or "",
            media_type=media_type,
            url=url or "",
            hd_url=data.get("hdurl") or None,
            copyright=(data.get("copyright") or "").strip() or None,
        )


@dataclass(frozen=True)
class AccessEvent:
    """Append-only marker that an APOD entry was returned to a caller."""
    apod_id: int
    timestamp: datetime
    id: Optional[int] = None

    @classmethod
    def now(cls, apod_id: int) -> "AccessEvent":
        """Create an access event stamped with the current time."""
        return cls(apod_id=apod_id, timestamp=datetime.now())


@dataclass(frozen=True)
class ApodWithStats:
    """
    Read-only projection of an APOD entry joined with its access statistics.

    Recomputed by the store on every query; never persisted.
    """
    apod: ApodRecord
    access_count: int = 0
    first_accessed: Optional[datetime] = None
    last_accessed: Optional[datetime] = None

    @property
    def has_been_viewed(self) -> bool:
        """Check if the entry has at least one recorded access."""
        return self.access_count > 0
