"""
Media storage collaborator for exported images.

This module defines the contract the image export path relies on (create an
entry, open it for writing, delete it) and a filesystem-backed implementation
that writes into a user-visible pictures directory.
"""

import logging
import mimetypes
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

MEDIA_RECORD_FAILURE = "Unable to create media store record."


class ApodStorageException(Exception):
    """Exception raised when a media entry cannot be created or written."""

    pass


@dataclass(frozen=True)
class MediaEntry:
    """Handle to an entry created in a media store."""

    uri: str
    display_name: str
    mime_type: Optional[str]
    path: Optional[Path] = None


class MediaStore(ABC):
    """Abstract media store interface for dependency injection."""

    @abstractmethod
    def create_entry(self, display_name: str, mime_type: Optional[str]) -> MediaEntry:
        """
        Create a new, empty media entry.

        Raises:
            ApodStorageException: If the entry cannot be created
        """
        pass

    @abstractmethod
    def open_output_stream(self, entry: MediaEntry) -> BinaryIO:
        """Open a writable binary stream for an entry."""
        pass

    @abstractmethod
    def delete(self, entry: MediaEntry) -> bool:
        """Delete an entry, returning True if something was removed."""
        pass


class DirectoryMediaStore(MediaStore):
    """Media store backed by a plain directory on disk."""

    _UNSAFE_CHARACTERS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')
    _MAX_NAME_LENGTH = 120

    def __init__(self, directory: Path):
        """
        Initialize the media store.

        Args:
            directory: Directory exported images are written into
        """
        self.directory = Path(directory).expanduser().resolve()

    def create_entry(self, display_name: str, mime_type: Optional[str]) -> MediaEntry:
        """Create an empty file named after the display name and MIME type."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ApodStorageException(MEDIA_RECORD_FAILURE) from e

        stem = self._sanitize(display_name)
        extension = (mimetypes.guess_extension(mime_type) if mime_type else None) or ""
        # mimetypes prefers .jpe on some platforms
        if extension == ".jpe":
            extension = ".jpg"

        for attempt in range(1000):
            suffix = f" ({attempt})" if attempt else ""
            path = self.directory / f"{stem}{suffix}{extension}"
            try:
                # Never overwrite an existing export
                with open(path, "xb"):
                    pass
            except FileExistsError:
                continue
            except OSError as e:
                raise ApodStorageException(MEDIA_RECORD_FAILURE) from e

            logger.debug(f"Created media entry {path}")
            return MediaEntry(
                uri=path.as_uri(),
                display_name=display_name,
                mime_type=mime_type,
                path=path,
            )

        raise ApodStorageException(MEDIA_RECORD_FAILURE)

    def open_output_stream(self, entry: MediaEntry) -> BinaryIO:
        """Open the entry's file for writing."""
        return open(self._path_of(entry), "wb")

    def delete(self, entry: MediaEntry) -> bool:
        """Remove the entry's file."""
        path = self._path_of(entry)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Deleted media entry {path}")
        return True

    def _path_of(self, entry: MediaEntry) -> Path:
        if entry.path is None:
            raise ValueError(f"Media entry {entry.uri} has no local path")
        return entry.path

    def _sanitize(self, display_name: str) -> str:
        """Turn a display name into a safe file name stem."""
        stem = self._UNSAFE_CHARACTERS.sub("_", display_name).strip(" .")
        return stem[: self._MAX_NAME_LENGTH] or "apod"
