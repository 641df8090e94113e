"""
APOD manager exposing repository operations to a presentation layer.

Keeps the currently selected entry and the last error, runs repository
operations as tracked tasks and publishes their outcomes to listeners.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Awaitable, Callable, List, Optional, Set, TypeVar

from ..cache.media_store import MediaEntry
from ..models.apod_data import APOD_FIRST_DATE, ApodRecord, ApodWithStats
from .apod_repository import ApodRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

ApodListener = Callable[[ApodRecord], None]
ErrorListener = Callable[[BaseException], None]


class ApodManager:
    """
    Presentation-facing wrapper around ApodRepository.

    Results of operations started through the manager are published to the
    registered listeners. ``dispose_pending`` stops results of operations
    already in flight from being published; the operations themselves keep
    running to completion.
    """

    def __init__(self, repository: ApodRepository):
        self._repository = repository
        self.current_apod: Optional[ApodRecord] = None
        self.error: Optional[BaseException] = None
        self._apod_listeners: List[ApodListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._pending: Set[asyncio.Task] = set()
        self._generation = 0

    @staticmethod
    def today() -> date:
        """
        Get today's date as the selection default.

        Uses the local calendar date; no adjustment is made for the time
        zone APOD entries are published in.
        """
        return datetime.now().date()

    def add_apod_listener(self, listener: ApodListener) -> None:
        self._apod_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    @property
    def pending_count(self) -> int:
        """Number of operations still running."""
        return len(self._pending)

    def set_apod_date(self, apod_date: Optional[date] = None) -> asyncio.Task:
        """
        Select the entry for a date (today if None) and publish it.

        Returns:
            asyncio.Task: Task resolving to the entry, or None on failure
        """
        apod_date = apod_date or self.today()
        if isinstance(apod_date, datetime):
            apod_date = apod_date.date()
        if apod_date < APOD_FIRST_DATE:
            logger.warning(f"{apod_date} predates the first APOD ({APOD_FIRST_DATE})")
        return self._submit(self._repository.get(apod_date), self._publish_apod)

    def load_image(
        self, record: ApodRecord, path_consumer: Callable[[str], None]
    ) -> asyncio.Task:
        """Resolve an entry's image and hand the path or URL to a consumer."""
        return self._submit(self._repository.get_image(record), path_consumer)

    def export_image(
        self, record: ApodRecord, on_success: Optional[Callable[[MediaEntry], None]] = None
    ) -> asyncio.Task:
        """Export an entry's image to the media store."""
        return self._submit(self._repository.download_image(record), on_success)

    async def get_all_summaries(self) -> List[ApodWithStats]:
        """Get every cached entry with its view statistics."""
        return await self._repository.get_all()

    def dispose_pending(self) -> int:
        """
        Detach every pending operation.

        Returns:
            int: Number of operations detached
        """
        detached = len(self._pending)
        self._generation += 1
        self._pending.clear()
        if detached:
            logger.debug(f"Detached {detached} pending APOD operations")
        return detached

    async def wait_pending(self) -> None:
        """Wait for every pending operation to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _submit(
        self, operation: Awaitable[T], on_result: Optional[Callable[[T], None]]
    ) -> asyncio.Task:
        self.error = None
        generation = self._generation
        task = asyncio.ensure_future(self._run(operation, on_result, generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(
        self,
        operation: Awaitable[T],
        on_result: Optional[Callable[[T], None]],
        generation: int,
    ) -> Optional[T]:
        try:
            result = await operation
        except Exception as e:
            if generation == self._generation:
                self._publish_error(e)
            else:
                logger.debug(f"Dropped error from detached operation: {e}")
            return None

        if generation == self._generation and on_result is not None:
            on_result(result)
        return result

    def _publish_apod(self, record: ApodRecord) -> None:
        self.current_apod = record
        for listener in list(self._apod_listeners):
            listener(record)

    def _publish_error(self, error: BaseException) -> None:
        logger.error(f"APOD operation failed: {error}")
        self.error = error
        for listener in list(self._error_listeners):
            listener(error)
