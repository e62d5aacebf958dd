from __future__ import annotations
from cotask.tests.trio_test_case import TrioTestCase, no_leaked_frames
from cotask import *
from cotask.interop import wait
import threading
import trio
import typing as t
import unittest

class TestWait(TrioTestCase):
    async def test_ready(self) -> None:
        task = make_task(lambda: 3, suspend=False)
        self.assertEqual(await wait(task), 3)

    async def test_completed_by_trio_task(self) -> None:
        task = make_promise_task()
        handle = task.promise_handle()
        async def complete() -> None:
            await trio.sleep(0.01)
            handle.set_value(5)
        self.nursery.start_soon(complete)
        self.assertEqual(await wait(task), 5)

    async def test_completed_by_thread(self) -> None:
        task = make_promise_task()
        handle = task.promise_handle()
        async def complete() -> None:
            await trio.to_thread.run_sync(handle.set_value, "from a thread")
        self.nursery.start_soon(complete)
        self.assertEqual(await wait(task), "from a thread")

    async def test_failure(self) -> None:
        task = make_promise_task()
        handle = task.promise_handle()
        self.nursery.start_soon(trio.to_thread.run_sync, handle.set_exception, ValueError("bad"))
        with self.assertRaises(ValueError):
            await wait(task)

    async def test_combinator(self) -> None:
        tasks = [make_promise_task() for _ in range(3)]
        handles = [task.promise_handle() for task in tasks]
        combined = when_all(tasks)
        async def complete() -> None:
            for handle in reversed(handles):
                await trio.to_thread.run_sync(handle.set_value, handles.index(handle))
        self.nursery.start_soon(complete)
        self.assertEqual(await wait(combined), [0, 1, 2])

    async def test_use_task_with_token(self) -> None:
        token = trio.lowlevel.current_trio_token()
        threads: t.List[int] = []
        def initiate(handler: CompletionHandler) -> None:
            threading.Thread(target=handler, args=(None, 7)).start()
        with using_encoding(Encoding.EXCEPTION):
            task = use_task(initiate, Signature.ERROR_VALUE, token=token)
        task = task.then(lambda value: threads.append(threading.get_ident()) or value)
        self.assertEqual(await wait(task), 7)
        # with a token, the continuation runs in trio's thread
        self.assertEqual(threads, [threading.get_ident()])

    async def test_cancelled(self) -> None:
        task = make_promise_task()
        handle = task.promise_handle()
        with trio.move_on_after(0.01) as scope:
            await wait(task)
        self.assertTrue(scope.cancelled_caught)
        # the cancelled waiter no longer holds on to our trio task
        self.assertIsNone(task.frame.promise.caller)
        # the waiter is discarded, but the task still completes
        self.assertTrue(handle.set_value(1))
        self.assertTrue(task.is_ready())
        self.assertEqual(task.take(), 1)

class TestTrioTestCase(unittest.TestCase):
    def test_base_class_constructible(self) -> None:
        case = TrioTestCase()
        self.assertFalse(hasattr(case, 'nursery'))

    def test_leaked_frame(self) -> None:
        leaked = make_promise_task()
        with self.assertRaises(AssertionError):
            with no_leaked_frames():
                leaked = leaked.detach()
        leaked.reset()
        with no_leaked_frames():
            pass

    def test_completed_frame_not_leaked(self) -> None:
        with no_leaked_frames():
            task = make_promise_task()
            handle = task.promise_handle()
            task.detach()
            handle.set_value(1)
