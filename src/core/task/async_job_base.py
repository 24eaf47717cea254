import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class AsyncRecurringJob(ABC):
    """
    Base class for maintenance jobs that repeat on a fixed interval.

    Subclasses implement `run_once()`. A failing cycle is logged and the next
    cycle still runs; cancellation ends the loop.
    """

    def __init__(self, interval_seconds: float):
        """
        Args:
            interval_seconds: Pause between the end of one cycle and the start of the next.
                Zero or less runs a single cycle per `start()`.
        """
        self._interval = float(interval_seconds)
        self._task: asyncio.Task | None = None
        self._stopping: bool = False

    @property
    def job_name(self) -> str:
        return self.__class__.__name__

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ----------------------------------------------------------------------
    # Required implementation in subclasses
    # ----------------------------------------------------------------------
    @abstractmethod
    async def run_once(self) -> None:
        """One maintenance cycle."""
        ...

    # ----------------------------------------------------------------------
    # Internal background loop
    # ----------------------------------------------------------------------
    async def _loop(self) -> None:
        logger.info(f"[{self.job_name}] loop started (interval={self._interval}s)")

        while not self._stopping:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                logger.info(f"[{self.job_name}] task cancelled")
                break
            except Exception as e:
                logger.exception(f"[{self.job_name}] cycle failed: {e}")

            if self._interval <= 0:
                break
            if not self._stopping:
                try:
                    await asyncio.sleep(self._interval)
                except asyncio.CancelledError:
                    break

        logger.info(f"[{self.job_name}] loop stopped")

    # ----------------------------------------------------------------------
    # Public API: start & stop
    # ----------------------------------------------------------------------
    def start(self) -> asyncio.Task:
        """Start the job in the background and return its task handle."""
        if self.is_running:
            logger.warning(f"[{self.job_name}] already running")
            return self._task  # type: ignore[return-value]

        self._stopping = False
        self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it. Safe to call when not running."""
        self._stopping = True

        if not self._task:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
