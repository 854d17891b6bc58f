"""Sequential job executor."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

__all__ = ["SerialWorker", "Job"]

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class SerialWorker:
    """Run submitted jobs one at a time, in submission order.

    A job starts only after the previous one has returned. Exceptions
    raised by a job are logged and do not stop the worker.
    """

    def __init__(self) -> None:
        self._jobs: asyncio.Queue[Job] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start consuming jobs on the running loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the worker, including the job in flight."""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        # Drop jobs that will never run so join() does not hang
        while not self._jobs.empty():
            self._jobs.get_nowait()
            self._jobs.task_done()

    def submit(self, job: Job) -> None:
        """Append a job to the queue."""
        self._jobs.put_nowait(job)

    async def join(self) -> None:
        """Wait until every submitted job has completed."""
        await self._jobs.join()

    async def _run(self) -> None:
        while True:
            job = await self._jobs.get()
            try:
                await job()
            except asyncio.CancelledError:
                logger.info("Worker cancelled while running a job.")
                raise
            except Exception as e:  # noqa: BLE001
                logger.error(f"Unexpected error in worker job: {e}", exc_info=True)
            finally:
                self._jobs.task_done()
