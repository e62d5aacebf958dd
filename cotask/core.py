"""Tasks: hand-driven coroutine frames which can be awaited and resumed from outside

A Frame is a native coroutine plus a Promise where its result will be stored.
We drive the coroutine ourselves, much like `dneio.reset` drives a coroutine
which yields `Shift`: when the coroutine wants to block, it yields a Suspend
request, and we call the function inside the Suspend with the frame itself.
That function arranges for someone to call `frame.resume()` later; until then,
the coroutine just sits there.

The only thing which yields a Suspend, other than the explicit suspend_always
and suspend_if, is awaiting a Task which isn't ready yet. That Suspend records
the awaiting frame as the "caller" in the awaited task's Promise. When the
awaited frame completes, it resumes its caller, which takes the result out of
the Promise and carries on. So control unwinds back up a chain of awaits
without any event loop: whoever completes the innermost frame runs everything
that was waiting on it, right then, on their own stack.

Frames start eagerly: constructing one runs its coroutine up to the first
suspension. `make_task` suspends first thing, so a task made with it doesn't
run the wrapped callable until something resumes it.

A Task owns its frame; dropping the Task, calling `reset`, or leaving a
`with task:` block destroys the frame. To let a frame outlive its Task, call
`detach`, which hands ownership to the frame itself and returns a
DetachedTask; the frame then stays alive until it completes. `then` detaches
the task it's called on, so a chain of continuations keeps running even if
nobody keeps the original Task around.

Code which isn't awaiting a frame, but needs to push a result into it and wake
it up, uses a PromiseHandle. Handles are weak: once the frame is destroyed or
completed, operations on the handle do nothing and return False.

Destroying a frame which someone is still waiting on abandons the waiter; it
will never be resumed. That's legal, but we log a warning about it.

"""
from __future__ import annotations
from cotask.outcome import Value, Error, ResultValue
import abc
import collections
import enum
import inspect
import logging
import re
import threading
import types
import typing as t
import weakref
if t.TYPE_CHECKING:
    from cotask.compose import Continuation

__all__ = [
    'Resumable',
    'Suspend',
    'suspend_always',
    'suspend_if',
    'State',
    'Promise',
    'Frame',
    'Task',
    'DetachedTask',
    'ResumeHandle',
    'PromiseHandle',
    'start',
    'make_task',
    'make_promise_task',
    'returns_task',
    'resume_caller',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

class Resumable:
    "Something which can be woken up once the Task it's waiting on completes"
    @abc.abstractmethod
    def resume(self) -> bool:
        "Wake this up; returns False if there was nothing left to wake."
        pass

class Suspend:
    "The request a frame's coroutine yields to its driver when it wants to block"
    __slots__ = ('func',)
    def __init__(self, func: t.Callable[[Resumable], None]) -> None:
        self.func = func

def _nobody(frame: Resumable) -> None:
    pass

@types.coroutine
def suspend_always() -> t.Generator[Suspend, None, None]:
    "Block the current frame until something resumes it through a handle"
    yield Suspend(_nobody)

@types.coroutine
def suspend_if(condition: bool) -> t.Generator[Suspend, None, None]:
    if condition:
        yield Suspend(_nobody)

class State(enum.Enum):
    SUSPENDED = "suspended"
    RUNNING = "running"
    COMPLETED = "completed"
    DESTROYED = "destroyed"

class Promise(t.Generic[T]):
    """The result slot of a frame, and whoever is waiting for it

    `result` is None until something is stored; `take` consumes it, so a
    second `take` gets `default` rather than the old value.

    `lock` guards the result, the caller, and the state of the owning frame. It
    is only ever held briefly, never while running user code, and never
    together with another promise's lock.

    """
    def __init__(self, default: t.Any = None) -> None:
        self.lock = threading.Lock()
        self.default = default
        self.result: t.Optional[ResultValue] = None
        self.caller: t.Optional[Resumable] = None

    def __repr__(self) -> str:
        return f"Promise(result={self.result!r}, caller={self.caller!r})"

    def set_outcome(self, result: ResultValue) -> None:
        with self.lock:
            self.result = result

    def set_value(self, value: T) -> None:
        self.set_outcome(Value(value))

    def set_exception(self, exn: BaseException) -> None:
        self.set_outcome(Error(exn))

    def has_result(self) -> bool:
        return self.result is not None

    def peek(self) -> t.Optional[ResultValue]:
        "Look at the stored result without consuming it"
        return self.result

    def take_outcome(self) -> t.Optional[ResultValue]:
        with self.lock:
            result, self.result = self.result, None
        return result

    def take(self) -> T:
        "Consume the stored result, raising if it's an Error; returns the default if there's nothing stored."
        result = self.take_outcome()
        if result is None:
            return self.default
        return result.unwrap()

# Frames which own themselves; see Frame.own_self.
_self_owned: t.Set[Frame] = set()

_resuming = threading.local()

def resume_caller(caller: Resumable) -> None:
    """Resume a frame's caller once the frame has completed

    Completing a frame resumes its caller, which may complete and resume its
    own caller, and so on up a chain of `then` links of any length. So we
    don't recurse: the outermost call on each thread runs a queue, and calls
    made while it's running just add to the queue.

    """
    pending: t.Optional[t.Deque[Resumable]] = getattr(_resuming, 'pending', None)
    if pending is not None:
        pending.append(caller)
        return
    _resuming.pending = pending = collections.deque([caller])
    error: t.Optional[BaseException] = None
    while pending:
        caller = pending.popleft()
        try:
            caller.resume()
        except BaseException as e:
            # keep resuming the others; the first failure is raised afterwards
            logger.debug("resume_caller: %s raised %s", caller, e)
            if error is None:
                error = e
    _resuming.pending = None
    if error is not None:
        raise error

class Frame(Resumable, t.Generic[T]):
    """A coroutine we drive by hand, and the Promise its result goes into

    The coroutine is started immediately, and runs until its first Suspend.

    """
    def __init__(self, coro: t.Coroutine[Suspend, None, T],
                 promise: t.Optional[Promise[T]] = None) -> None:
        self.coro = coro
        self.promise: Promise[T] = promise if promise is not None else Promise()
        self.state = State.RUNNING
        self._resume_pending = False
        self._step()

    def __repr__(self) -> str:
        name = getattr(self.coro, '__qualname__', type(self.coro).__name__)
        return f"Frame({name}, {self.state.value})"

    def is_alive(self) -> bool:
        "True if this frame hasn't completed and hasn't been destroyed."
        return self.state is State.SUSPENDED or self.state is State.RUNNING

    def resume(self) -> bool:
        with self.promise.lock:
            if self.state is State.SUSPENDED:
                self.state = State.RUNNING
            elif self.state is State.RUNNING:
                # Someone resumed us while we're still on the stack, most likely
                # because what we were suspending on completed immediately. We'll
                # go around again once the current step has yielded.
                self._resume_pending = True
                return True
            else:
                logger.debug("Frame(%s).resume: nothing to resume", self)
                return False
        self._step()
        return True

    def _step(self) -> None:
        "Run the coroutine until it suspends or returns; we must already be in state RUNNING."
        send: ResultValue = Value(None)
        while True:
            try:
                yielded = send.send(self.coro)
            except StopIteration as e:
                self._complete(Value(e.value))
                return
            except BaseException as e:
                self._complete(Error(e))
                return
            if not isinstance(yielded, Suspend):
                send = Error(TypeError("frame coroutine yielded something other than a Suspend", yielded))
                continue
            try:
                yielded.func(self)
            except BaseException as e:
                send = Error(e)
                continue
            send = Value(None)
            with self.promise.lock:
                if self.state is not State.DESTROYED:
                    if self._resume_pending:
                        self._resume_pending = False
                        continue
                    self.state = State.SUSPENDED
                    return
            logger.debug("Frame(%s): closing after being destroyed while running", self)
            self.coro.close()
            return

    def _complete(self, result: ResultValue) -> None:
        with self.promise.lock:
            self.promise.result = result
            if self.state is State.DESTROYED:
                return
            self.state = State.COMPLETED
            caller, self.promise.caller = self.promise.caller, None
        _self_owned.discard(self)
        logger.debug("Frame(%s): completed with %s, resuming %s", self, result, caller)
        if caller is not None:
            resume_caller(caller)

    def set_caller(self, caller: Resumable) -> None:
        "Resume this caller once we complete; or immediately, if we already have."
        with self.promise.lock:
            state = self.state
            if self.is_alive():
                self.promise.caller = caller
                return
        if state is State.COMPLETED:
            caller.resume()
        else:
            logger.warning("Frame(%s): %s waited on a destroyed frame; it won't be resumed", self, caller)

    def clear_caller(self, caller: Resumable) -> bool:
        "Forget this caller, if it's still the one waiting on us; returns False if it wasn't."
        with self.promise.lock:
            if self.promise.caller is not caller:
                return False
            self.promise.caller = None
            return True

    def own_self(self) -> None:
        "Keep this frame alive until it completes, even if nothing else refers to it."
        with self.promise.lock:
            if self.is_alive():
                _self_owned.add(self)

    def destroy(self) -> None:
        "Close the coroutine and abandon whoever is waiting on us."
        with self.promise.lock:
            if self.state is State.DESTROYED:
                return
            previous, self.state = self.state, State.DESTROYED
            caller, self.promise.caller = self.promise.caller, None
        _self_owned.discard(self)
        if caller is not None:
            logger.warning("Frame(%s): destroyed while %s was waiting on it; abandoning it", self, caller)
        if previous is State.RUNNING:
            # _step will close the coroutine when it next yields
            return
        self.coro.close()

def _await_task(task: Task[T], capture: bool) -> t.Generator[Suspend, None, t.Any]:
    # a plain generator, since __await__ must not return a coroutine
    if not task.is_ready():
        yield Suspend(task.suspend)
    if capture:
        return task.take_outcome()
    return task.take()

class Task(t.Generic[T]):
    """An owning handle to one frame

    Await it from inside another frame to get its value. Outside of a frame, use
    `is_ready` and `take`, or `cotask.interop.wait` from trio.

    A Task which has been moved from (by `move`, `detach` or `then`) has no frame.
    It's always ready, and `take` returns its default.

    """
    def __init__(self, frame: t.Optional[Frame[T]] = None, default: t.Any = None) -> None:
        self._frame = frame
        self.default = default

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._frame!r})"

    def __del__(self) -> None:
        frame = getattr(self, '_frame', None)
        if frame is not None:
            frame.destroy()

    def __enter__(self) -> Task[T]:
        return self

    def __exit__(self, *args: t.Any) -> None:
        self.reset()

    @property
    def frame(self) -> t.Optional[Frame[T]]:
        return self._frame

    def is_ready(self) -> bool:
        frame = self._frame
        return frame is None or frame.state is State.COMPLETED

    def suspend(self, caller: Resumable) -> None:
        "Arrange for this caller to be resumed once this task is ready."
        if self._frame is None:
            caller.resume()
        else:
            self._frame.set_caller(caller)

    def take(self) -> T:
        "Consume the result; raises if the task failed. Only meaningful once the task is ready."
        if self._frame is None:
            return self.default
        return self._frame.promise.take()

    def take_outcome(self) -> ResultValue:
        if self._frame is None:
            return Value(self.default)
        result = self._frame.promise.take_outcome()
        if result is None:
            return Value(self._frame.promise.default)
        return result

    def __await__(self) -> t.Generator[Suspend, None, T]:
        return _await_task(self, capture=False)

    @types.coroutine
    def captured(self) -> t.Generator[Suspend, None, ResultValue]:
        "Await this task's result as a ResultValue, without raising if it failed."
        return (yield from _await_task(self, capture=True))

    def resume(self) -> bool:
        "Resume our frame; this is how a task made by make_task gets started."
        return self._frame is not None and self._frame.resume()

    def move(self) -> Task[T]:
        "Transfer our frame to a new handle of the same type, leaving this one empty."
        frame, self._frame = self._frame, None
        return type(self)(frame, self.default)

    def reset(self) -> None:
        "Destroy our frame now."
        frame, self._frame = self._frame, None
        if frame is not None:
            frame.destroy()

    def detach(self) -> DetachedTask[T]:
        "Hand ownership of our frame to the frame itself; it'll live until it completes."
        frame, self._frame = self._frame, None
        if frame is not None:
            frame.own_self()
        return DetachedTask(frame, self.default)

    def promise_handle(self) -> PromiseHandle[T]:
        return PromiseHandle.from_task(self)

    def then(self, continuation: t.Optional[Continuation] = None) -> Task[t.Any]:
        "Make a new task which runs this continuation on our value; see cotask.compose."
        from cotask.compose import then
        return then(self, continuation)

    def then_multi(self, *continuations: Continuation) -> Task[t.Any]:
        from cotask.compose import then_multi
        return then_multi(self, *continuations)

class DetachedTask(Task[T]):
    """A Task whose frame owns itself

    Dropping this handle doesn't destroy the frame; it lives until it completes
    and has resumed whoever was waiting on it. `reset` still destroys it
    explicitly.

    """
    def __del__(self) -> None:
        pass

    def detach(self) -> DetachedTask[T]:
        return t.cast(DetachedTask[T], self.move())

class ResumeHandle:
    """A weak, type-erased reference to a frame, which can only resume it

    This is what code that merely needs to wake a frame up holds, such as a
    combinator waking its parent.

    """
    def __init__(self, frame: t.Optional[Frame] = None) -> None:
        self._ref: t.Optional[weakref.ref[Frame]] = weakref.ref(frame) if frame is not None else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._get_frame()!r})"

    def _get_frame(self) -> t.Optional[Frame]:
        return self._ref() if self._ref is not None else None

    def is_alive(self) -> bool:
        frame = self._get_frame()
        return frame is not None and frame.is_alive()

    def resume(self) -> bool:
        frame = self._get_frame()
        if frame is None:
            return False
        return frame.resume()

class PromiseHandle(ResumeHandle, t.Generic[T]):
    """A weak reference to a frame, through which a result can be pushed in

    If the frame has been destroyed or has already completed, pushing a result
    does nothing and returns False.

    """
    @staticmethod
    def from_task(task: Task[T]) -> PromiseHandle[T]:
        return PromiseHandle(task.frame)

    def erase(self) -> ResumeHandle:
        return ResumeHandle(self._get_frame())

    def get_promise(self) -> t.Optional[Promise[T]]:
        frame = self._get_frame()
        return frame.promise if frame is not None else None

    def set_outcome(self, result: ResultValue) -> bool:
        frame = self._get_frame()
        if frame is None or not frame.is_alive():
            logger.debug("PromiseHandle(%s).set_outcome: frame is gone, dropping %s", frame, result)
            return False
        frame.promise.set_outcome(result)
        return frame.resume()

    def set_value(self, value: T) -> bool:
        return self.set_outcome(Value(value))

    def set_exception(self, exn: BaseException) -> bool:
        return self.set_outcome(Error(exn))

def start(coro: t.Coroutine[t.Any, t.Any, T], default: t.Any = None) -> Task[T]:
    "Run this coroutine as a frame, up to its first suspension, and return the Task owning it."
    return Task(Frame(coro, Promise(default)), default)

def returns_task(func: t.Callable) -> bool:
    "Whether this callable's result must be awaited: it's an async function, or declared to return a Task."
    if inspect.iscoroutinefunction(func):
        return True
    try:
        annotation = inspect.signature(func).return_annotation
    except (TypeError, ValueError):
        return False
    if isinstance(annotation, str):
        return re.match(r'(\w+\.)*(Detached)?Task\b', annotation) is not None
    origin = t.get_origin(annotation) or annotation
    return isinstance(origin, type) and issubclass(origin, Task)

async def _call(func: t.Optional[t.Callable[[], t.Any]], awaits: bool, suspend: bool, default: t.Any) -> t.Any:
    await suspend_if(suspend)
    if func is None:
        return default
    if awaits:
        return await func()
    return func()

def make_task(func: t.Optional[t.Callable[[], t.Any]] = None, *,
              suspend: bool = True, default: t.Any = None) -> Task[t.Any]:
    """Wrap a plain callable in a task

    With `suspend`, the frame suspends before calling `func`, and the task isn't
    ready until something resumes it. Without it, `func` runs right away.

    If `func` is an async function or is declared to return a Task, the task
    awaits its result. With no `func`, the task produces `default`.

    """
    awaits = func is not None and returns_task(func)
    return start(_call(func, awaits, suspend, default), default)

async def _pushed(promise: Promise[T]) -> T:
    await suspend_always()
    return promise.take()

def make_promise_task(default: t.Any = None) -> Task[t.Any]:
    "Make a task which completes with whatever is pushed into it through a PromiseHandle."
    promise: Promise[t.Any] = Promise(default)
    return Task(Frame(_pushed(promise), promise), default)
