"""
Bounded background writer for activity events.

Callers hand events to ``activity_queue.enqueue`` and return immediately. A
single worker task drains the queue into the database. When the queue is full
the event is dropped and counted; storage failures are logged and counted.
Neither ever reaches the request that produced the event.
"""
import asyncio
import logging
from typing import Callable, Optional

from nibret.core.config import settings
from nibret.core.database import AsyncSessionLocal
from nibret.core.metrics import ACTIVITY_QUEUE_DEPTH, record_activity_event
from nibret.models.activity import Activity

logger = logging.getLogger(__name__)


class ActivityQueue:
    """In-process queue feeding a single activity writer task."""

    def __init__(
        self,
        session_factory: Callable = AsyncSessionLocal,
        maxsize: int = settings.ACTIVITY_QUEUE_MAXSIZE,
    ):
        self.session_factory = session_factory
        self.maxsize = maxsize
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        return self._queue

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, activity: Activity) -> bool:
        """Queue ``activity`` for writing. Returns False when it was dropped."""
        try:
            self.queue.put_nowait(activity)
        except asyncio.QueueFull:
            record_activity_event("dropped")
            logger.warning(
                "Activity queue full (%s), dropping %s event", self.maxsize, activity.type
            )
            return False
        record_activity_event("queued")
        ACTIVITY_QUEUE_DEPTH.set(self.queue.qsize())
        return True

    async def write(self, activity: Activity) -> bool:
        """Persist one activity, absorbing any failure."""
        try:
            async with self.session_factory() as session:
                session.add(activity)
                await session.commit()
        except Exception as exc:
            record_activity_event("failed")
            logger.error("Failed to record %s activity: %s", activity.type, exc)
            return False
        record_activity_event("recorded")
        return True

    async def _run(self) -> None:
        queue = self.queue
        while True:
            activity = await queue.get()
            try:
                await self.write(activity)
            finally:
                queue.task_done()
                ACTIVITY_QUEUE_DEPTH.set(queue.qsize())

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="activity-writer")
        logger.info("Activity writer started (maxsize=%s)", self.maxsize)

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain what is queued (bounded by ``timeout``) and stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Activity writer stopped with %s events unwritten", self.queue.qsize()
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Activity writer stopped")


activity_queue = ActivityQueue()
