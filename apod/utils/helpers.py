"""
Helper utility functions for the APOD cache.

This module contains date formatting, local file naming, storage directory
resolution and the chunked stream copy shared by the image download paths.
"""

import logging
import mimetypes
import os
import re
from datetime import date, datetime
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Protocol
from urllib.parse import urlparse

from ..models.apod_data import APOD_DATE_FORMAT, ApodRecord

logger = logging.getLogger(__name__)

BUFFER_SIZE = 16_384
URL_FILENAME_PATTERN = re.compile(r"^.*/([^/#?]+)(?:\?.*)?(?:#.*)?$")
LOCAL_FILENAME_FORMAT = "{date:%Y%m%d}-{name}"


class AsyncByteStream(Protocol):
    """Protocol for an asynchronous readable byte stream."""

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes; empty bytes signals end-of-stream."""
        ...


def format_apod_date(value: date) -> str:
    """
    Format a date as the API's ``YYYY-MM-DD`` string.

    Args:
        value: Date (or datetime, whose time part is dropped)

    Returns:
        str: Formatted date string
    """
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(APOD_DATE_FORMAT)


def parse_apod_date(value: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` string into a date.

    Raises:
        ValueError: If the string is not in the expected format
    """
    return datetime.strptime(value.strip(), APOD_DATE_FORMAT).date()


def url_filename(url: str) -> Optional[str]:
    """Get the trailing path segment of a URL, without query or fragment."""
    match = URL_FILENAME_PATTERN.match(url)
    if match:
        return match.group(1)
    return None


def local_filename(record: ApodRecord) -> Optional[str]:
    """
    Build the deterministic local file name for an APOD image.

    The name is ``YYYYMMDD-<original-filename>``, e.g. ``20210305-example.jpg``.

    Returns:
        Optional[str]: File name, or None if the URL has no file segment
    """
    name = url_filename(record.url)
    if name is None:
        return None
    return LOCAL_FILENAME_FORMAT.format(date=record.date, name=name)


def guess_mime_type(url: str) -> Optional[str]:
    """Derive a MIME type from the file extension of a URL."""
    path = urlparse(url).path
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type


def is_directory_available(directory: Path) -> bool:
    """Check if a directory exists (or can be created) and is writable."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.debug(f"Directory {directory} unavailable: {e}")
        return False
    return directory.is_dir() and os.access(directory, os.W_OK)


def resolve_storage_directory(candidates: Iterable[Optional[Path]]) -> Path:
    """
    Pick the first available directory from an ordered list of candidates.

    Args:
        candidates: Directories in order of preference; None entries are skipped

    Returns:
        Path: First directory that exists or could be created and is writable

    Raises:
        OSError: If none of the candidates is usable
    """
    tried = []
    for directory in candidates:
        if directory is None:
            continue
        directory = Path(directory).expanduser()
        if is_directory_available(directory):
            return directory
        tried.append(str(directory))
    raise OSError(f"No writable storage directory available (tried: {', '.join(tried)})")


async def copy_stream(source: AsyncByteStream, output: BinaryIO) -> int:
    """
    Copy an asynchronous byte stream into a binary file object.

    Reads fixed-size chunks until end-of-stream and writes every non-empty
    chunk verbatim.

    Returns:
        int: Total number of bytes written
    """
    total_bytes = 0
    while True:
        chunk = await source.read(BUFFER_SIZE)
        if not chunk:
            break
        output.write(chunk)
        total_bytes += len(chunk)
    output.flush()
    return total_bytes
