"""Fan out to many tasks, and fan back in to one

Every combinator works the same way. We first make the parent task, whose frame
suspends straight away unless there's nothing to wait for. Then each input task
is detached, and a small child frame awaits its result and reports it into a
shared CombinatorContext. The context counts down; the report which brings the
count to zero resumes the parent, through a weak handle, and the parent
collects the results.

The count reaching zero is the one point after which nothing may write into
the results any more. Every report checks the count first, and reports which
arrive after that are dropped.

Children report the outcome of their task, not its value, so a failed child
still counts towards completion. The parent unwraps the outcomes when it
collects them, which raises the first failure at the parent's await point.

"""
from __future__ import annotations
from dataclasses import dataclass, field
from cotask.core import Task, ResumeHandle, PromiseHandle, start, suspend_if
from cotask.outcome import ResultValue
import functools
import logging
import typing as t

__all__ = [
    'CombinatorContext',
    'when_all',
    'when_zip',
    'when_n',
    'when_any',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

@dataclass
class CombinatorContext:
    """The state shared by one combinator's parent and children

    `results` has one slot per input for the positional combinators; for
    when_n, it's appended to in completion order.

    """
    results: t.List[t.Any]
    remaining: int
    handle: ResumeHandle = field(default_factory=ResumeHandle)

    def report_slot(self, index: int, result: ResultValue) -> None:
        "Store the result for input `index` in its own slot."
        if self.remaining == 0:
            logger.debug("CombinatorContext.report_slot(%d): already complete, dropping %s", index, result)
            return
        self.results[index] = result
        self._count_down()

    def report_pair(self, index: int, result: ResultValue) -> None:
        "Append an (index, result) pair, in completion order."
        if self.remaining == 0:
            logger.debug("CombinatorContext.report_pair(%d): already complete, dropping %s", index, result)
            return
        self.results.append((index, result))
        self._count_down()

    def _count_down(self) -> None:
        self.remaining -= 1
        if self.remaining == 0:
            logger.debug("CombinatorContext: complete, resuming %s", self.handle)
            self.handle.resume()

async def _report(task: Task, report: t.Callable[[ResultValue], None]) -> None:
    report(await task.captured())

async def _fan_in(ctx: CombinatorContext, children: t.List[Task],
                  collect: t.Callable[[CombinatorContext], T]) -> T:
    # children is only here to keep the child frames alive as long as we are
    await suspend_if(ctx.remaining != 0)
    return collect(ctx)

def _fan_out(tasks: t.Sequence[Task], ctx: CombinatorContext,
             collect: t.Callable[[CombinatorContext], T],
             report: t.Callable[[CombinatorContext, int, ResultValue], None]) -> Task[T]:
    children: t.List[Task] = []
    parent = start(_fan_in(ctx, children, collect))
    ctx.handle = PromiseHandle.from_task(parent).erase()
    for index, task in enumerate(tasks):
        children.append(start(_report(task.detach(), functools.partial(report, ctx, index))))
    return parent

def _collect_list(ctx: CombinatorContext) -> t.List[t.Any]:
    return [result.unwrap() for result in ctx.results]

def _collect_tuple(ctx: CombinatorContext) -> t.Tuple[t.Any, ...]:
    return tuple(result.unwrap() for result in ctx.results)

def _collect_pairs(ctx: CombinatorContext) -> t.List[t.Tuple[int, t.Any]]:
    return [(index, result.unwrap()) for index, result in ctx.results]

def when_all(*tasks: t.Any) -> Task[t.Any]:
    """Make a task which completes once all these tasks have

    Called with one iterable of tasks, the result is a list with one value per
    input, in input order. Called with tasks as separate arguments, it's
    when_zip, and the result is a tuple.

    """
    if len(tasks) == 1 and not isinstance(tasks[0], Task):
        return _when_all_range(list(tasks[0]))
    return when_zip(*tasks)

def _when_all_range(tasks: t.List[Task[T]]) -> Task[t.List[T]]:
    ctx = CombinatorContext(results=[None]*len(tasks), remaining=len(tasks))
    return _fan_out(tasks, ctx, _collect_list, CombinatorContext.report_slot)

def when_zip(*tasks: Task) -> Task[t.Tuple[t.Any, ...]]:
    "Make a task which completes once all these tasks have, producing a tuple of their values"
    ctx = CombinatorContext(results=[None]*len(tasks), remaining=len(tasks))
    return _fan_out(tasks, ctx, _collect_tuple, CombinatorContext.report_slot)

def when_n(tasks: t.Iterable[Task[T]], n: int = 0) -> Task[t.List[t.Tuple[int, T]]]:
    """Make a task which completes once n of these tasks have

    The result is a list of (index, value) pairs, in the order the tasks
    completed. An `n` of zero, or more than the number of tasks, means all of
    them.

    """
    tasks = list(tasks)
    if not 0 < n < len(tasks):
        n = len(tasks)
    ctx = CombinatorContext(results=[], remaining=n)
    return _fan_out(tasks, ctx, _collect_pairs, CombinatorContext.report_pair)

def _first(pairs: t.List[t.Tuple[int, T]]) -> t.Optional[t.Tuple[int, T]]:
    return pairs[0] if pairs else None

def when_any(tasks: t.Iterable[Task[T]]) -> Task[t.Optional[t.Tuple[int, T]]]:
    "Make a task which completes with the (index, value) of whichever task completes first; None if there are no tasks"
    return when_n(tasks, 1).then(_first)
