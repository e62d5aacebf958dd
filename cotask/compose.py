"""Composing tasks with continuations

`then(task, continuation)` makes a new task which awaits `task`, calls
`continuation`, and produces whatever the continuation produces. There are four
ways to do that, depending on whether the continuation takes the value, and on
whether it returns a plain value or something to await. Which one we use is
decided once, from the continuation's signature, when `then` is called; see
Shape.

A continuation declared to return None is treated as an observer: it's called
for its side effects, and the new task produces the original value.

Under the exception encoding, if `task` fails, the new task fails with the
same exception and the continuation never runs. Under the paired or tagged
encodings, a failed external operation produces an ordinary value which
describes the failure, so the continuation runs and gets to look at it.

"""
from __future__ import annotations
from cotask.core import Task, DetachedTask, start, returns_task
import enum
import inspect
import logging
import typing as t

__all__ = [
    'Shape',
    'then',
    'then_multi',
]

logger = logging.getLogger(__name__)

Continuation = t.Callable[..., t.Any]

class Shape(enum.Enum):
    NULLARY_TO_VALUE = "nullary_to_value"
    NULLARY_TO_TASK = "nullary_to_task"
    UNARY_TO_VALUE = "unary_to_value"
    UNARY_TO_TASK = "unary_to_task"

    @staticmethod
    def of(continuation: Continuation) -> Shape:
        takes_value = _takes_value(continuation)
        if returns_task(continuation):
            return Shape.UNARY_TO_TASK if takes_value else Shape.NULLARY_TO_TASK
        else:
            return Shape.UNARY_TO_VALUE if takes_value else Shape.NULLARY_TO_VALUE

    @property
    def takes_value(self) -> bool:
        return self in (Shape.UNARY_TO_VALUE, Shape.UNARY_TO_TASK)

def _takes_value(continuation: Continuation) -> bool:
    "Whether to pass the value; a continuation which can be called with no arguments isn't passed it."
    try:
        sig = inspect.signature(continuation)
    except (TypeError, ValueError):
        # some builtins have no signature; assume they want the value
        return True
    required = [param for param in sig.parameters.values()
                if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
                and param.default is param.empty]
    keyword_only = [param for param in sig.parameters.values()
                    if param.kind is param.KEYWORD_ONLY and param.default is param.empty]
    if len(required) > 1 or keyword_only:
        raise TypeError("a continuation must take zero or one arguments", continuation, sig)
    return len(required) == 1

def _passes_through(continuation: Continuation) -> bool:
    try:
        annotation = inspect.signature(continuation).return_annotation
    except (TypeError, ValueError):
        return False
    return annotation is None or annotation == 'None'

async def _nullary_to_value(task: Task, func: Continuation) -> t.Any:
    await task
    return func()

async def _nullary_to_task(task: Task, func: Continuation) -> t.Any:
    await task
    return await func()

async def _unary_to_value(task: Task, func: Continuation) -> t.Any:
    return func(await task)

async def _unary_to_task(task: Task, func: Continuation) -> t.Any:
    return await func(await task)

_bodies = {
    Shape.NULLARY_TO_VALUE: _nullary_to_value,
    Shape.NULLARY_TO_TASK: _nullary_to_task,
    Shape.UNARY_TO_VALUE: _unary_to_value,
    Shape.UNARY_TO_TASK: _unary_to_task,
}

async def _observe(task: Task, func: Continuation, takes_value: bool) -> t.Any:
    value = await task
    if takes_value:
        func(value)
    else:
        func()
    return value

def then(task: Task, continuation: t.Optional[Continuation] = None) -> Task[t.Any]:
    """Make a task which awaits `task` and then runs `continuation`

    `task` is detached; the returned task is caller-owned, and if it's dropped
    before it completes, the continuation never runs.

    With no continuation, this is just `task.detach()`.

    """
    if continuation is None:
        return task.detach()
    shape = Shape.of(continuation)
    source: DetachedTask = task.detach()
    if _passes_through(continuation) and shape in (Shape.NULLARY_TO_VALUE, Shape.UNARY_TO_VALUE):
        logger.debug("then(%s, %s): observer, %s", source, continuation, shape)
        return start(_observe(source, continuation, shape.takes_value), source.default)
    logger.debug("then(%s, %s): %s", source, continuation, shape)
    return start(_bodies[shape](source, continuation))

def then_multi(task: Task, *continuations: Continuation) -> Task[t.Any]:
    "Equivalent to task.then(f).then(g)... for each continuation in order"
    for continuation in continuations:
        task = then(task, continuation)
    return task
