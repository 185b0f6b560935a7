"""
Caller-owned cancellation and deadline token.

A token is passed to any StorageClient operation. The client shortens the
request timeout to the token's remaining time, refuses to start once the
token has fired, and abandons the in-flight request or closes its response
when cancel() is called from another thread.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from .errors import OperationCancelled


logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation signal with an optional deadline."""

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now after which the token counts as expired
                     (None for no deadline)
        """
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._reason = "operation cancelled"
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str = "operation cancelled") -> None:
        """Fire the token and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception(f"Cancellation callback {callback!r} failed")

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def reason(self) -> str:
        if self._event.is_set():
            return self._reason
        return "deadline exceeded"

    def raise_if_cancelled(self, operation: Optional[str] = None) -> None:
        """
        Raises:
            OperationCancelled: Token was cancelled or its deadline passed
        """
        if self.cancelled:
            prefix = f"failed to {operation}: " if operation else ""
            raise OperationCancelled(f"{prefix}{self.reason}", operation=operation)

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run callback when the token is cancelled.

        Runs it immediately if the token already fired. Returns a function
        that unregisters the callback.
        """
        with self._lock:
            fired = self._event.is_set()
            if not fired:
                self._callbacks.append(callback)

        if fired:
            callback()
            return lambda: None

        def unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unregister
