"""Turn callback-style asynchronous operations into tasks

An external runtime starts an operation and later calls a completion handler.
`use_task` gives it a CompletionHandler and hands back a Task which completes
when the handler is called:

```
task = use_task(lambda handler: sock.async_read(buf, handler), Signature.ERROR_VALUE)
nbytes = await task
```

This is the same move as `await shift(file.read_cb)` in dneio: the callback
resumes the suspended frame directly, on whatever thread the runtime calls it
on. If the runtime calls handlers on some other thread, and the task is being
waited on from trio, pass the run's TrioToken, and the resumption is posted
into trio instead.

Handlers come in four shapes, told apart by their Signature, and what the task
produces depends on the global Encoding; see the table in `CompletionHandler`.

"""
from __future__ import annotations
from cotask.core import Task, PromiseHandle, make_promise_task
from cotask.encoding import Encoding, get_encoding
from cotask.outcome import Value, Error, ResultValue, is_failure, failure_exception
import enum
import logging
import trio
import typing as t

__all__ = [
    'Signature',
    'CompletionHandler',
    'use_task',
]

logger = logging.getLogger(__name__)

class Signature(enum.Enum):
    "The arguments an external operation calls its completion handler with"
    NONE = 0
    VALUE = 1
    ERROR_VALUE = 2
    ERROR = 3

    @property
    def arity(self) -> int:
        return {Signature.NONE: 0, Signature.VALUE: 1,
                Signature.ERROR_VALUE: 2, Signature.ERROR: 1}[self]

def _encode(signature: Signature, encoding: Encoding, args: t.Tuple[t.Any, ...]) -> ResultValue:
    if signature is Signature.NONE:
        return Value(None)
    elif signature is Signature.VALUE:
        value, = args
        return Value(value)
    if signature is Signature.ERROR_VALUE:
        error, value = args
    else:
        error, = args
        value = None
    if encoding is Encoding.PAIRED:
        return Value((error, value))
    failed = is_failure(error)
    if encoding is Encoding.EXCEPTION:
        return Error(failure_exception(error)) if failed else Value(value)
    # tagged: the task's value is itself a ResultValue
    return Value(Error(failure_exception(error)) if failed else Value(value))

class CompletionHandler:
    """A callable to give to an external operation; calling it completes a task

    | Signature              | EXCEPTION          | PAIRED        | TAGGED                    |
    |------------------------|--------------------|---------------|---------------------------|
    | NONE `()`              | None               | None          | None                      |
    | VALUE `(v)`            | v                  | v             | v                         |
    | ERROR_VALUE `(e, v)`   | v, or raises       | (e, v)        | Value(v) or Error(exc)    |
    | ERROR `(e)`            | None, or raises    | (e, None)     | Value(None) or Error(exc) |

    A falsy `e` is success. If `e` isn't an exception, it's wrapped in a
    CompletionError.

    The encoding is read from the global setting when the handler is made.
    Only the first call does anything; the handler holds just a weak handle to
    the task, so if the task has been dropped, calling it does nothing either.

    """
    def __init__(self, handle: PromiseHandle, signature: Signature,
                 token: t.Optional[trio.lowlevel.TrioToken] = None) -> None:
        self.handle = handle
        self.signature = signature
        self.encoding = get_encoding()
        self.token = token
        self.called = False

    @staticmethod
    def open(signature: Signature,
             token: t.Optional[trio.lowlevel.TrioToken] = None) -> t.Tuple[Task, CompletionHandler]:
        "Make a task, and the handler which completes it"
        task = make_promise_task()
        return task, CompletionHandler(PromiseHandle.from_task(task), signature, token)

    def __repr__(self) -> str:
        return f"CompletionHandler({self.signature.name}, {self.encoding.name}, {self.handle!r})"

    def __call__(self, *args: t.Any) -> None:
        if len(args) != self.signature.arity:
            raise TypeError("completion handler for", self.signature, "called with", args)
        if self.called:
            logger.debug("%s: called again with %s, ignoring", self, args)
            return
        self.called = True
        result = _encode(self.signature, self.encoding, args)
        if self.token is None:
            if not self.handle.set_outcome(result):
                logger.debug("%s: task is gone, dropping %s", self, result)
        else:
            self.token.run_sync_soon(self.handle.set_outcome, result)

def use_task(initiate: t.Callable[[CompletionHandler], t.Any],
             signature: Signature = Signature.VALUE, *,
             token: t.Optional[trio.lowlevel.TrioToken] = None) -> Task[t.Any]:
    """Start an external operation with a completion handler, and return the task it completes

    `initiate` is called with the handler, and may call it before returning.

    """
    task, handler = CompletionHandler.open(signature, token)
    initiate(handler)
    return task
