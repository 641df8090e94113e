"""
APOD repository coordinating the remote API, the local store and file I/O.

The repository implements a cache-aside read of APOD entries, records an
access event for every entry it hands out, and resolves or exports the
images behind image-type entries.

Local store calls run on an I/O thread pool; remote calls and file
transfers run under a bounded network semaphore. Nothing is retried.
"""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Set, TypeVar
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from ..api.nasa_api_manager import AioHttpClient, APODService, ApodAPIException
from ..cache.apod_database import ApodDatabase, StatsListener
from ..cache.media_store import (
    ApodStorageException,
    DirectoryMediaStore,
    MediaEntry,
    MediaStore,
)
from ..models.apod_data import AccessEvent, ApodRecord, ApodWithStats
from ..utils.helpers import (
    copy_stream,
    guess_mime_type,
    local_filename,
    resolve_storage_directory,
)
from .config_manager import ApodConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_POOL_SIZE = 10


class ApodRepository:
    """
    Cache-aside repository for APOD entries and their images.

    Constructed explicitly with its collaborators; see ApodRepositoryFactory
    for the default wiring.
    """

    def __init__(
        self,
        database: ApodDatabase,
        service: APODService,
        media_store: Optional[MediaStore] = None,
        pictures_directory: Optional[Path] = None,
        private_directory: Optional[Path] = None,
        network_pool_size: int = NETWORK_POOL_SIZE,
        io_pool: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Initialize the repository.

        Args:
            database: Local store
            service: Remote APOD client
            media_store: Target for exported images
            pictures_directory: Preferred directory for cached image files
            private_directory: Fallback directory when the preferred one is unavailable
            network_pool_size: Maximum concurrent network operations
            io_pool: Executor for local store calls (created if None)
        """
        if network_pool_size < 1:
            raise ValueError("network_pool_size must be at least 1")

        self._database = database
        self._service = service
        self._media_store = media_store
        self._pictures_directory = pictures_directory
        self._private_directory = private_directory
        self._network_pool_size = network_pool_size
        self._network_semaphore: Optional[asyncio.Semaphore] = None
        self._owns_io_pool = io_pool is None
        self._io_pool = io_pool or ThreadPoolExecutor(thread_name_prefix="apod-io")
        self._access_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Cache-aside fetch
    # ------------------------------------------------------------------

    async def get(self, apod_date: date, await_access: bool = False) -> ApodRecord:
        """
        Get the APOD entry for a date, fetching and caching it on a miss.

        Args:
            apod_date: Calendar date (a datetime's time part is ignored)
            await_access: Wait for the access event to be written before returning

        Returns:
            ApodRecord: Persisted entry carrying its store id

        Raises:
            ApodAPIException: The remote fetch failed (propagated unchanged)
            sqlalchemy.exc.SQLAlchemyError: The local store failed
        """
        if isinstance(apod_date, datetime):
            apod_date = apod_date.date()

        record = await self._run_io(self._database.select_by_date, apod_date)
        if record is not None:
            logger.debug(f"Cache hit for APOD {apod_date}")
        else:
            logger.debug(f"Cache miss for APOD {apod_date}, fetching from {self._service.get_service_name()}")
            record = await self._fetch_and_store(apod_date)

        task = self._insert_access(record)
        if await_access:
            await asyncio.gather(task, return_exceptions=True)
        return record

    async def _fetch_and_store(self, apod_date: date) -> ApodRecord:
        async with self._network():
            fetched = await self._service.get_metadata(self._service.format_date(apod_date))

        try:
            record_id = await self._run_io(self._database.insert, fetched)
        except IntegrityError:
            # Another caller stored this date first
            existing = await self._run_io(self._database.select_by_date, fetched.date)
            if existing is None:
                raise
            logger.info(f"APOD {fetched.date} was stored concurrently, using stored entry")
            return existing

        logger.info(f"Cached APOD {fetched.date} ({fetched.media_type.value}) with id {record_id}")
        return fetched.with_id(record_id)

    async def get_all(self) -> List[ApodWithStats]:
        """Get every cached entry with its access statistics, newest first."""
        return await self._run_io(self._database.select_all_with_stats)

    def subscribe(self, listener: StatsListener) -> Callable[[], None]:
        """Register a listener for changes to the with-stats projection."""
        return self._database.subscribe(listener)

    # ------------------------------------------------------------------
    # Access log
    # ------------------------------------------------------------------

    def _insert_access(self, record: ApodRecord) -> asyncio.Task:
        """Append an access event for a record as a detached task."""
        access = AccessEvent.now(record.id)
        task = asyncio.ensure_future(self._run_io(self._database.insert_access, access))
        self._access_tasks.add(task)
        task.add_done_callback(self._on_access_done)
        return task

    def _on_access_done(self, task: asyncio.Task) -> None:
        self._access_tasks.discard(task)
        if task.cancelled():
            logger.warning("Access log write was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to record APOD access: {error}", exc_info=error)

    async def wait_for_access_log(self) -> None:
        """Wait until every pending access event write has finished."""
        while self._access_tasks:
            await asyncio.gather(*list(self._access_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Image resolution
    # ------------------------------------------------------------------

    def get_local_file(self, record: ApodRecord) -> Optional[Path]:
        """
        Get the local file path an image entry is cached under.

        Returns:
            Optional[Path]: Path (which may not exist yet), or None for
            non-image entries and URLs without a file name
        """
        if not record.is_image:
            return None
        filename = local_filename(record)
        if filename is None:
            return None
        directory = resolve_storage_directory(
            [self._pictures_directory, self._private_directory]
        )
        return directory / filename

    async def get_image(self, record: ApodRecord) -> str:
        """
        Resolve an entry to something displayable.

        Non-image entries resolve to their URL. Image entries resolve to a
        ``file://`` URI of the cached copy, downloading it first if needed;
        if the download fails the remote URL is returned instead.

        Returns:
            str: Local file URI or remote URL
        """
        if not record.is_image:
            return record.url

        try:
            file = self.get_local_file(record)
        except OSError as e:
            logger.warning(f"No storage directory for {record.date}: {e}")
            return record.url
        if file is None:
            return record.url

        if file.exists():
            logger.debug(f"Using cached image {file}")
            return file.as_uri()

        try:
            total_bytes = await self._download(record.url, file)
        except (ApodAPIException, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Image download failed for {record.date}, using remote URL: {e}")
            return record.url

        logger.info(f"Downloaded {total_bytes} bytes to {file}")
        return file.as_uri()

    async def _download(self, url: str, file: Path) -> int:
        # Written under a temporary name and renamed, so the final path only
        # ever holds a complete image
        partial = file.with_name(f".{file.name}.tmp.{uuid4()}")
        try:
            async with self._network():
                async with self._service.get_file(url) as stream:
                    with open(partial, "wb") as output:
                        total_bytes = await copy_stream(stream, output)
            os.replace(partial, file)
        finally:
            self._remove_partial(partial)
        return total_bytes

    @staticmethod
    def _remove_partial(file: Path) -> None:
        try:
            file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial download {file}: {e}")

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def download_image(self, record: ApodRecord) -> MediaEntry:
        """
        Export an image entry into the media store.

        Args:
            record: Image-type entry

        Returns:
            MediaEntry: The created media entry

        Raises:
            ValueError: The entry is not an image
            ApodStorageException: The media entry could not be created or written
            ApodAPIException: The remote file could not be opened
        """
        if not record.is_image:
            raise ValueError(f"APOD {record.date} is not an image ({record.media_type.value})")
        if self._media_store is None:
            raise ApodStorageException("No media store configured")

        url = record.best_url
        async with self._network():
            async with self._service.get_file(url) as stream:
                entry = self._media_store.create_entry(record.title, guess_mime_type(url))
                try:
                    with self._media_store.open_output_stream(entry) as output:
                        total_bytes = await copy_stream(stream, output)
                except (ApodAPIException, OSError, asyncio.TimeoutError) as e:
                    self._media_store.delete(entry)
                    logger.error(f"Export of {record.date} failed, removed {entry.uri}: {e}")
                    raise ApodStorageException(f"Failed to export {url}: {e}") from e

        logger.debug(f"Exported {total_bytes} bytes from {url} to {entry.uri}")
        return entry

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _network(self) -> asyncio.Semaphore:
        # Created lazily so it binds to the running loop
        if self._network_semaphore is None:
            self._network_semaphore = asyncio.Semaphore(self._network_pool_size)
        return self._network_semaphore

    async def _run_io(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._io_pool, func, *args)

    async def close(self) -> None:
        """Flush pending access writes and release every resource."""
        await self.wait_for_access_log()
        await self._service.close()
        if self._owns_io_pool:
            self._io_pool.shutdown(wait=True)
        self._database.close()
        logger.info("ApodRepository closed")


class ApodRepositoryFactory:
    """Factory for creating repositories from configuration."""

    @staticmethod
    def create_repository(config: ApodConfig) -> ApodRepository:
        """Wire up a repository with the aiohttp client and SQLite store."""
        http_client = AioHttpClient(timeout_seconds=config.network.timeout_seconds)
        service = APODService(http_client, config.api_key, config.network.base_url)
        database = ApodDatabase(config.storage.database_path)
        media_store = DirectoryMediaStore(config.storage.media_directory)
        return ApodRepository(
            database=database,
            service=service,
            media_store=media_store,
            pictures_directory=config.storage.pictures_directory,
            private_directory=config.storage.private_directory,
            network_pool_size=config.network.pool_size,
        )
