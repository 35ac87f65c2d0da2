import threading

from fuzzrun.core.errors import RequestCancelled


class CancelContext:
    """
    Cancellation handle shared between the scheduler and every runner.

    The scheduler calls cancel(). In-flight requests registered through
    add_callback() are interrupted right away; the others notice at their
    next I/O boundary. Either way they abort with RequestCancelled.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []

    def cancel(self):
        with self._lock:
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def add_callback(self, callback):
        """
        Registers a no-argument callable to run on cancel().

        It runs immediately, in the calling thread, when the context is
        already cancelled. Otherwise it runs in the thread that cancels.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise RequestCancelled("request cancelled by context")

    def __repr__(self) -> str:
        return f"CancelContext(cancelled={self.cancelled})"
