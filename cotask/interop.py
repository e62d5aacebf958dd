"""Waiting on tasks from trio

A trio task can't `await` a Task directly, since trio doesn't know what to do
with our Suspend requests. Instead, `wait` registers a TrioWaiter as the task's
caller and blocks the trio task with `wait_task_rescheduled`; when the Task
completes, the waiter reschedules the trio task, much like dneio's
TrioContinuation.

The Task might complete on some other thread, if a completion handler is
called there. We can only reschedule a trio task from inside its run, so in
that case the waiter posts the reschedule through the run's TrioToken.

"""
from __future__ import annotations
from cotask.core import Resumable, Frame, Task
import logging
import outcome
import threading
import trio
import typing as t

__all__ = [
    'TrioWaiter',
    'wait',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

class TrioWaiter(Resumable):
    """Resumes a trio task blocked in wait_task_rescheduled

    While `on_stack` is set, the trio task hasn't blocked yet; it's still
    registering us as a caller. If we're resumed then, we just note it, and the
    trio task doesn't block at all.

    """
    def __init__(self, task: trio.lowlevel.Task, token: trio.lowlevel.TrioToken,
                 waiting_on: t.Optional[Frame] = None) -> None:
        self.task = task
        self.waiting_on = waiting_on
        self.token = token
        self.thread = threading.get_ident()
        self.lock = threading.Lock()
        self.on_stack = True
        self.resumed = False
        self.cancelled = False

    def __repr__(self) -> str:
        return f"TrioWaiter({self.task.name})"

    def _reschedule(self) -> None:
        if self.cancelled:
            logger.debug("%s: resumed after cancellation, discarding", self)
            return
        trio.lowlevel.reschedule(self.task, outcome.Value(None))

    def resume(self) -> bool:
        with self.lock:
            if self.cancelled or self.resumed:
                logger.debug("%s: nothing to resume", self)
                return False
            self.resumed = True
            if self.on_stack:
                logger.debug("%s: immediately resumed", self)
                return True
        if threading.get_ident() == self.thread:
            self._reschedule()
        else:
            self.token.run_sync_soon(self._reschedule)
        return True

    def abort(self, raise_cancel: t.Any) -> trio.lowlevel.Abort:
        logger.debug("%s: cancelled", self)
        with self.lock:
            self.cancelled = True
        # drop ourselves from the frame, so it doesn't keep the trio task around
        if self.waiting_on is not None:
            self.waiting_on.clear_caller(self)
        return trio.lowlevel.Abort.SUCCEEDED

async def wait(task: Task[T]) -> T:
    "Wait for this Task to complete, from a trio task, and return its value"
    if task.is_ready():
        await trio.lowlevel.checkpoint()
        return task.take()
    waiter = TrioWaiter(trio.lowlevel.current_task(), trio.lowlevel.current_trio_token(), task.frame)
    task.suspend(waiter)
    with waiter.lock:
        waiter.on_stack = False
        resumed = waiter.resumed
    if resumed:
        await trio.lowlevel.cancel_shielded_checkpoint()
    else:
        await trio.lowlevel.wait_task_rescheduled(waiter.abort)
    return task.take()
