"""How a failed external operation surfaces through a task

This is selected globally, not per call. The default comes from the
COTASK_ENCODING environment variable, and can be changed with set_encoding.

- EXCEPTION: a failure is raised at the await point.
- PAIRED: the task's value is an (indicator, value) pair; the indicator is
  falsy on success.
- TAGGED: the task's value is a ResultValue, outcome.Value or outcome.Error.

The encoding only decides what the completion-handler bridge produces. Frames
always store an outcome, and an exception raised by ordinary code always
propagates as an exception, whatever the encoding.

"""
from __future__ import annotations
import contextlib
import enum
import logging
import os
import typing as t

__all__ = [
    'Encoding',
    'get_encoding',
    'set_encoding',
    'using_encoding',
    'encoding_from_environ',
]

logger = logging.getLogger(__name__)

class Encoding(enum.Enum):
    EXCEPTION = "exception"
    PAIRED = "paired"
    TAGGED = "tagged"

def encoding_from_environ(environ: t.Mapping[str, str]) -> Encoding:
    "Parse COTASK_ENCODING out of this environment, defaulting to EXCEPTION"
    name = environ.get('COTASK_ENCODING', Encoding.EXCEPTION.value)
    try:
        return Encoding(name.strip().lower())
    except ValueError:
        raise ValueError("COTASK_ENCODING must be one of",
                         [enc.value for enc in Encoding], "not", name) from None

_encoding: Encoding = encoding_from_environ(os.environ)

def get_encoding() -> Encoding:
    return _encoding

def set_encoding(encoding: Encoding) -> None:
    global _encoding
    logger.debug("set_encoding: %s -> %s", _encoding, encoding)
    _encoding = Encoding(encoding)

@contextlib.contextmanager
def using_encoding(encoding: Encoding) -> t.Iterator[Encoding]:
    "Use this encoding inside the block, and restore the previous one afterwards."
    previous = get_encoding()
    set_encoding(encoding)
    try:
        yield encoding
    finally:
        set_encoding(previous)
