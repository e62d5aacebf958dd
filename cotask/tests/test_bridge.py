from __future__ import annotations
from cotask import *
from cotask.encoding import encoding_from_environ
from cotask.outcome import Value, Error
import errno
import unittest
import typing as t

class MyException(Exception):
    pass

def immediately(*args: t.Any) -> t.Callable[[CompletionHandler], None]:
    "An operation which calls its handler straight away with these arguments"
    def initiate(handler: CompletionHandler) -> None:
        handler(*args)
    return initiate

class TestException(unittest.TestCase):
    def setUp(self) -> None:
        self.enterContext(using_encoding(Encoding.EXCEPTION))

    def test_none(self) -> None:
        task = use_task(immediately(), Signature.NONE)
        self.assertTrue(task.is_ready())
        self.assertIsNone(task.take())

    def test_value(self) -> None:
        self.assertEqual(use_task(immediately(42)).take(), 42)

    def test_error_value(self) -> None:
        self.assertEqual(use_task(immediately(0, "data"), Signature.ERROR_VALUE).take(), "data")
        self.assertEqual(use_task(immediately(None, "data"), Signature.ERROR_VALUE).take(), "data")

    def test_error_value_fails(self) -> None:
        task = use_task(immediately(errno.EIO, None), Signature.ERROR_VALUE)
        with self.assertRaises(CompletionError) as cm:
            task.take()
        self.assertEqual(cm.exception.error, errno.EIO)

    def test_exception_indicator(self) -> None:
        exn = MyException()
        task = use_task(immediately(exn, None), Signature.ERROR_VALUE)
        with self.assertRaises(MyException) as cm:
            task.take()
        self.assertIs(cm.exception, exn)

    def test_error(self) -> None:
        self.assertIsNone(use_task(immediately(0), Signature.ERROR).take())
        with self.assertRaises(CompletionError):
            use_task(immediately(errno.ENOENT), Signature.ERROR).take()

    def test_raises_at_await_point(self) -> None:
        async def read() -> str:
            try:
                return await use_task(immediately(errno.EAGAIN, None), Signature.ERROR_VALUE)
            except CompletionError as e:
                return f"failed with {e.error}"
        self.assertEqual(start(read()).take(), f"failed with {errno.EAGAIN}")

class TestPaired(unittest.TestCase):
    def test_signatures(self) -> None:
        with using_encoding(Encoding.PAIRED):
            self.assertIsNone(use_task(immediately(), Signature.NONE).take())
            self.assertEqual(use_task(immediately(5)).take(), 5)
            self.assertEqual(use_task(immediately(0, 5), Signature.ERROR_VALUE).take(), (0, 5))
            self.assertEqual(use_task(immediately(errno.EIO, None), Signature.ERROR_VALUE).take(),
                             (errno.EIO, None))
            self.assertEqual(use_task(immediately(errno.EIO), Signature.ERROR).take(), (errno.EIO, None))
            self.assertEqual(use_task(immediately(0), Signature.ERROR).take(), (0, None))

class TestTagged(unittest.TestCase):
    def test_signatures(self) -> None:
        with using_encoding(Encoding.TAGGED):
            self.assertIsNone(use_task(immediately(), Signature.NONE).take())
            self.assertEqual(use_task(immediately(5)).take(), 5)
            success = use_task(immediately(0, "data"), Signature.ERROR_VALUE).take()
            failure = use_task(immediately(errno.EIO, None), Signature.ERROR_VALUE).take()
            done = use_task(immediately(None), Signature.ERROR).take()
        self.assertIsInstance(success, Value)
        self.assertEqual(success.value, "data")
        self.assertIsInstance(failure, Error)
        self.assertIsInstance(failure.error, CompletionError)
        self.assertEqual(failure.error.error, errno.EIO)
        self.assertIsInstance(done, Value)
        self.assertIsNone(done.value)

class TestCompletionHandler(unittest.TestCase):
    def test_later(self) -> None:
        task, handler = CompletionHandler.open(Signature.VALUE)
        self.assertFalse(task.is_ready())
        handler("later")
        self.assertEqual(task.take(), "later")

    def test_encoding_fixed_at_creation(self) -> None:
        with using_encoding(Encoding.PAIRED):
            task, handler = CompletionHandler.open(Signature.ERROR_VALUE)
        with using_encoding(Encoding.EXCEPTION):
            handler(errno.EIO, None)
        self.assertEqual(task.take(), (errno.EIO, None))

    def test_wrong_arity(self) -> None:
        task, handler = CompletionHandler.open(Signature.ERROR_VALUE)
        with self.assertRaises(TypeError):
            handler("only one")
        self.assertFalse(task.is_ready())
        handler(None, 1)
        self.assertEqual(task.take(), 1)

    def test_called_twice(self) -> None:
        task, handler = CompletionHandler.open(Signature.VALUE)
        handler(1)
        handler(2)
        self.assertEqual(task.take(), 1)

    def test_task_dropped(self) -> None:
        task, handler = CompletionHandler.open(Signature.VALUE)
        del task
        handler("nobody listening")
        self.assertTrue(handler.called)

    def test_resumes_awaiter(self) -> None:
        handlers: t.List[CompletionHandler] = []
        async def body() -> int:
            first = await use_task(handlers.append)
            second = await use_task(handlers.append)
            return first + second
        task = start(body())
        handlers[0](1)
        self.assertFalse(task.is_ready())
        handlers[1](2)
        self.assertEqual(task.take(), 3)

class TestEncodingSetting(unittest.TestCase):
    def test_from_environ(self) -> None:
        self.assertEqual(encoding_from_environ({}), Encoding.EXCEPTION)
        self.assertEqual(encoding_from_environ({'COTASK_ENCODING': 'paired'}), Encoding.PAIRED)
        self.assertEqual(encoding_from_environ({'COTASK_ENCODING': ' Tagged '}), Encoding.TAGGED)
        with self.assertRaises(ValueError):
            encoding_from_environ({'COTASK_ENCODING': 'bogus'})

    def test_set_encoding(self) -> None:
        previous = get_encoding()
        try:
            set_encoding(t.cast(Encoding, "tagged"))
            self.assertEqual(get_encoding(), Encoding.TAGGED)
            with using_encoding(Encoding.PAIRED):
                self.assertEqual(get_encoding(), Encoding.PAIRED)
            self.assertEqual(get_encoding(), Encoding.TAGGED)
        finally:
            set_encoding(previous)
