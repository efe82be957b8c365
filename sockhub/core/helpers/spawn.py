import asyncio
import logging
from typing import Any, Coroutine


class TaskSpawner:
    """
    A lightweight helper for spawning and tracking background asyncio tasks.

    Every handler owns one spawner, which acts as its execution context:
    - all spawned tasks are tracked until completion
    - unhandled exceptions inside tasks are logged
    - completed tasks are automatically removed from the internal registry
    - once shut down, pending tasks are cancelled and new spawn requests
      are refused

    The class does not impose any scheduling policy; it simply delegates
    execution to the running event loop.
    """

    def __init__(self, name: str = "spawner", loop: asyncio.AbstractEventLoop | None = None):
        self._name = name
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()
        self._shutdown = False
        self._logger = logging.getLogger("core.helpers.spawn")

    @property
    def remaining_tasks(self) -> int:
        """
        Return the number of tasks currently being tracked.

        This reflects tasks that have been spawned but have not yet completed.
        """
        return len(self._tasks)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def on_done(self, task: asyncio.Task[Any]) -> None:
        """
        Callback executed when a spawned task completes.

        If the task raised an exception, it is logged. The task is then removed
        from the internal tracking set. Cancelled tasks are discarded silently.
        """
        self._tasks.discard(task)

        if task.cancelled():
            return

        if ex := task.exception():
            self._logger.error(
                f"Error occurred in task {task.get_name()}: {str(ex)}",
                exc_info=ex
            )

    def spawn(self, coro: Coroutine[Any, Any, None], name: str | None = None) -> asyncio.Task[Any] | None:
        """
        Spawn a coroutine as a background task and track its lifecycle.

        The task is registered, given a completion callback, and scheduled
        immediately. After shutdown the coroutine is discarded and None is
        returned.
        """
        if self._shutdown:
            coro.close()
            return None

        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro, name=f"{self._name}:{name or 'task'}")
        task.add_done_callback(self.on_done)
        self._tasks.add(task)
        return task

    def shutdown(self) -> None:
        """
        Refuse new tasks and cancel the pending ones.

        The task calling shutdown() is left running so that a task may shut
        down its own execution context and return normally.
        """
        if self._shutdown:
            return

        self._shutdown = True

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def wait(self, timeout: float | None = None) -> None:
        """
        Wait for every tracked task, except the caller, to complete.
        """
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            self._logger.warning(
                f"{len(pending)} task(s) of {self._name} still running after {timeout}s"
            )
