import threading

import pytest

from fuzzrun.core.context import CancelContext
from fuzzrun.core.errors import RequestCancelled


def test_cancel_sets_flag():
    context = CancelContext()
    context.raise_if_cancelled()
    context.cancel()

    assert context.cancelled
    with pytest.raises(RequestCancelled):
        context.raise_if_cancelled()


def test_callbacks_run_on_cancel():
    context = CancelContext()
    calls = []
    context.add_callback(lambda: calls.append("a"))
    context.add_callback(lambda: calls.append("b"))
    context.cancel()

    assert calls == ["a", "b"]


def test_removed_callback_not_run():
    context = CancelContext()
    calls = []

    def callback():
        calls.append(1)

    context.add_callback(callback)
    context.remove_callback(callback)
    context.remove_callback(callback)
    context.cancel()

    assert calls == []


def test_callback_added_after_cancel_runs_immediately():
    context = CancelContext()
    context.cancel()
    calls = []
    context.add_callback(lambda: calls.append(1))

    assert calls == [1]


def test_cancel_from_another_thread_wakes_waiter():
    context = CancelContext()
    woken = threading.Event()
    context.add_callback(woken.set)

    threading.Timer(0.05, context.cancel).start()

    assert woken.wait(2)
