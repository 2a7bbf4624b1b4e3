"""
Cancellation scopes for handler pipelines.

A Context is a tree node: cancelling it cancels every context derived from
it, never the other way round.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

CancelFunc = Callable[[], None]


class Context:
    """
    Cooperative cancellation scope.

    Nothing is interrupted when a context is cancelled; code that holds the
    context is expected to check done() or await wait() at points where it
    can stop safely.
    """

    def __init__(self, parent: Optional["Context"] = None):
        self._parent = parent
        self._event = asyncio.Event()
        self._children: List["Context"] = []
        if parent is not None:
            if parent.done():
                self._event.set()
            else:
                parent._children.append(self)

    def done(self) -> bool:
        """Return True once this context has been cancelled (non-blocking)."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel this context and its descendants. Repeated calls do nothing."""
        if self._event.is_set():
            return
        self._event.set()

        children, self._children = self._children, []
        for child in children:
            child.cancel()

        if self._parent is not None:
            try:
                self._parent._children.remove(self)
            except ValueError:
                pass

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._event.wait()


def with_cancel(parent: Optional[Context] = None) -> Tuple[Context, CancelFunc]:
    """
    Derive a cancellable child context.

    Args:
        parent: Context to derive from. A new root is used when omitted.

    Returns:
        A tuple of ``(child, cancel)``.
    """
    child = Context(parent if parent is not None else Context())
    return child, child.cancel


def with_timeout(
    parent: Optional[Context], timeout: float
) -> Tuple[Context, CancelFunc]:
    """
    Derive a child context that cancels itself after ``timeout`` seconds.

    Must be called from a running event loop. The returned cancel function
    also disarms the timer.
    """
    child, cancel_child = with_cancel(parent)
    handle = asyncio.get_running_loop().call_later(timeout, cancel_child)

    def cancel() -> None:
        handle.cancel()
        cancel_child()

    return child, cancel
