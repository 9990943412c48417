"""In-process runner for fire-and-forget generation jobs.

Each job runs in its own ``asyncio.Task``. The runner holds one in-flight task
per job key. Triggering a key that is already running returns the existing
task and marks the key for one more run, so work that lands while a job is
in flight is picked up when the current run finishes.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


def job_key(kind: str, record_id: str) -> str:
    return f"{kind}:{record_id}"


@dataclass
class JobHandle:
    """Returned by every trigger. Callers may await ``task`` or discard the handle.

    Attributes:
        key: ``{kind}:{record_id}``
        task: The task running (or that ran) the job, including any re-run
        accepted: False when the trigger was coalesced into an in-flight job
    """
    key: str
    task: asyncio.Task
    accepted: bool = True

    @property
    def done(self) -> bool:
        return self.task.done()


class BackgroundJobRunner:
    """Owns background job tasks for the lifetime of the application."""

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}
        # Coalesced triggers waiting for the in-flight run to finish
        self._rerun: dict[str, Callable[[], Awaitable[None]]] = {}

    def submit(self, key: str, coro_factory: Callable[[], Awaitable[None]]) -> JobHandle:
        """Start ``coro_factory()`` as a task unless ``key`` is already running.

        A trigger for a running key is coalesced: the running task executes the
        job once more after its current run, however many triggers arrived.

        Must be called from inside a running event loop.
        """
        running = self._tasks.get(key)
        if running is not None and not running.done():
            self._rerun[key] = coro_factory
            logger.info(f"Job already in flight, scheduling re-run: job_key={key}")
            return JobHandle(key=key, task=running, accepted=False)

        task = asyncio.create_task(self._run(key, coro_factory), name=key)
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        logger.info(f"Job started: job_key={key}")
        return JobHandle(key=key, task=task, accepted=True)

    def in_flight(self) -> list[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        while True:
            pending = [task for task in self._tasks.values() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, key: str, coro_factory: Callable[[], Awaitable[None]]) -> None:
        while True:
            try:
                await coro_factory()
            except Exception as e:
                # Jobs persist their own failures; anything reaching here is a bug in the job
                logger.error(f"Background job crashed: job_key={key}, error={e}", exc_info=True)

            # No await between this check and returning, so a trigger cannot slip in unseen
            coro_factory = self._rerun.pop(key, None)
            if coro_factory is None:
                return
            logger.info(f"Re-running coalesced job: job_key={key}")

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
            self._rerun.pop(key, None)
