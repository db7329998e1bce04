import asyncio
import math
from typing import Awaitable, Callable, List

from src.constants.config import PROGRESS_COMPLETE, PROGRESS_PAGE_COUNT_KNOWN
from src.utils.logger import get_logger, log_error

logger = get_logger(__name__)


def conversion_progress(completed_pages: int, total_pages: int) -> int:
    """floor(10 + completed / total * 90), clamped to [10, 100]."""
    if total_pages <= 0:
        return PROGRESS_PAGE_COUNT_KNOWN
    completed_pages = max(0, min(completed_pages, total_pages))
    span = PROGRESS_COMPLETE - PROGRESS_PAGE_COUNT_KNOWN
    return math.floor(PROGRESS_PAGE_COUNT_KNOWN + completed_pages / total_pages * span)


class ProgressTracker:
    """Counts finished pages and publishes progress that never goes backwards.

    Pages in a batch finish concurrently; publishing happens under a lock and
    values lower than or equal to the last published one are dropped.
    """

    def __init__(
        self,
        total_pages: int,
        publish: Callable[[int], Awaitable[object]],
    ):
        self.total_pages = total_pages
        self._publish = publish
        self._completed = 0
        self._last_published = -1
        self._lock = asyncio.Lock()
        self.history: List[int] = []

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def last_published(self) -> int:
        return self._last_published

    async def publish(self, value: int) -> bool:
        async with self._lock:
            if value <= self._last_published:
                return False
            await self._publish(value)
            self._last_published = value
            self.history.append(value)
            return True

    async def page_done(self) -> int:
        """Count one finished page (successful or not) and publish progress."""
        self._completed += 1
        value = conversion_progress(self._completed, self.total_pages)
        await self.publish(value)
        return value


async def count_page(tracker: ProgressTracker, document_id: str) -> None:
    """``page_done`` for workers: a failed progress write is logged and skipped."""
    try:
        await tracker.page_done()
    except Exception as e:
        log_error(
            logger,
            "Progress update failed",
            e,
            document_id=document_id,
            completed=tracker.completed,
        )
