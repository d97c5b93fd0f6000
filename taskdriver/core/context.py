"""
Cancellation context for driver calls.

A Context is supplied by the caller and checked by the driver before every
runtime call. Cancelling it, or letting its deadline pass, also fires the
callbacks registered with on_cancel(), which the driver uses to close an open
log stream so a blocked read returns.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

from taskdriver.core.errors import Cancelled, ContextError, DeadlineExceeded


logger = logging.getLogger('taskdriver.context')


class Context:
    """
    A cancel/deadline handle shared between a caller and the driver.

    Context.background() never ends on its own. Context.with_timeout(s)
    ends s seconds after creation.
    """

    def __init__(self, deadline: Optional[float] = None):
        self.deadline = deadline  # time.monotonic() value, or None
        self._done = threading.Event()
        self._err: Optional[ContextError] = None
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._timer = None

        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._finish(DeadlineExceeded())
            else:
                self._timer = threading.Timer(remaining, self._finish, args=(DeadlineExceeded(),))
                self._timer.daemon = True
                self._timer.start()

    @classmethod
    def background(cls) -> "Context":
        """A context with no deadline that is only done when cancelled."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "Context":
        """A context that ends after the given number of seconds."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self):
        """Cancel the context. Idempotent."""
        self._finish(Cancelled())

    def done(self) -> bool:
        return self._done.is_set()

    def err(self) -> Optional[ContextError]:
        """The reason the context ended, or None while it is live."""
        with self._lock:
            return self._err

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the context ends or timeout elapses."""
        return self._done.wait(timeout)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback fired once when the context ends.

        If the context has already ended the callback fires immediately.

        Returns:
            Callable: A function that unregisters the callback
        """
        with self._lock:
            if self._err is None:
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return lambda: None

    def _remove(self, callback: Callable[[], None]):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _finish(self, err: ContextError):
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            callbacks, self._callbacks = self._callbacks, []
            if self._timer is not None:
                self._timer.cancel()
        self._done.set()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancel callback failed: {str(e)}")
