"""The outcome library, with a little more typing, plus failure indicators

A ResultValue is either `outcome.Value(value)` or `outcome.Error(exception)`;
exactly one of the two. We use it everywhere a result is stored or passed
between frames, and it's what a caller receives under the tagged encoding.

External runtimes don't always report failure with an exception; they might
pass an errno, or some error-code object. outcome.Error only holds exceptions,
so such indicators are wrapped in CompletionError.

"""
from __future__ import annotations
from outcome import Value, Error
import outcome
import typing as t

__all__ = [
    'ResultValue',
    'Value',
    'Error',
    'CompletionError',
    'is_failure',
    'failure_exception',
]

T = t.TypeVar('T')

ResultValue = outcome.Outcome
"Either outcome.Value or outcome.Error; use isinstance to discriminate"

class CompletionError(Exception):
    "An external operation completed with a failure indicator which wasn't an exception."
    def __init__(self, error: t.Any) -> None:
        super().__init__(error)
        self.error = error

def is_failure(indicator: t.Any) -> bool:
    """Whether this failure indicator reports a failure.

    Like an error code, a falsy indicator (None, 0, an empty error object) means
    success.

    """
    return bool(indicator)

def failure_exception(indicator: t.Any) -> BaseException:
    "Turn a failure indicator into something we can raise or put in an outcome.Error"
    if isinstance(indicator, BaseException):
        return indicator
    return CompletionError(indicator)
