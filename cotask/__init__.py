"""Tasks built from hand-driven coroutines, with continuations and combinators

A Task is a unit of asynchronous work as a first-class value. It can be
awaited from another task, chained with `then`, or combined with others with
`when_all`, `when_n` and `when_any`. Callback-style asynchronous operations
become tasks through `use_task`.

There's no event loop. Awaiting a task which isn't ready suspends the awaiting
coroutine and records it in the task's promise; whoever completes the task,
usually by calling a completion handler, runs the awaiting coroutine right
then, on their own stack. This is delimited continuations again, as in dneio:

```
def cb(data):
  if data:
    more_work(data)
file.read_cb(cb)
```

becomes

```
data = await use_task(file.read_cb)
if data:
  more_work(data)
```

Since completion runs continuations immediately and in order, the order in
which callbacks fire is the order in which the code waiting on them runs.
`when_all` keeps results in input order regardless; `when_n` and `when_any`
report them in completion order.

To wait on a Task from trio, use `cotask.interop.wait`.

"""
from cotask.core import (
    Resumable, Suspend, suspend_always, suspend_if, State,
    Promise, Frame, Task, DetachedTask, ResumeHandle, PromiseHandle,
    start, make_task, make_promise_task,
)
from cotask.compose import Shape, then, then_multi
from cotask.combinators import CombinatorContext, when_all, when_zip, when_n, when_any
from cotask.bridge import Signature, CompletionHandler, use_task
from cotask.encoding import Encoding, get_encoding, set_encoding, using_encoding
from cotask.outcome import ResultValue, CompletionError
