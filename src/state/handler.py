"""
Handler pipeline - sequential reconciliation of a single resource.

A Runner owns an ordered chain of Handlers and one State. Each Handler
implements an independent part of the reconciliation and may either raise
(aborting the chain) or call State.stop() to end the chain without error.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List, Optional

from resources import ResourceClient
from state.context import CancelFunc, Context, with_cancel
from state.options import Logger, Option

logger = logging.getLogger(__name__)


class StateError(RuntimeError):
    """Raised when a State is used outside of an active run."""


class RunnerStatus(Enum):
    """Lifecycle of a single Runner.run() invocation."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    STOPPED = "stopped"


class State:
    """
    Context shared by every handler of a pipeline.

    Gives handlers access to the resource client and logger, and lets them
    stop the running pipeline without raising.
    """

    def __init__(self, client: ResourceClient, *opts: Option):
        self._client = client
        self._log: Logger = logger
        self._stop: Optional[CancelFunc] = None
        for opt in opts:
            opt(self)

    @property
    def log(self) -> Logger:
        return self._log

    @property
    def client(self) -> ResourceClient:
        return self._client

    def stop(self) -> None:
        """
        Stop the pipeline before its next handler. Subsequent calls do nothing.

        Raises:
            StateError: If no run has started on this state yet.
        """
        if self._stop is None:
            raise StateError("stop() called before the pipeline was run")
        self._stop()


class Handler(ABC):
    """
    A single step of the pipeline.

    Handlers should contain logic that is independent of the other steps;
    anything they need is captured at construction or read from the State.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def handle(self, ctx: Context, s: State) -> None:
        """
        Execute this step.

        Args:
            ctx: Cancellation scope of the current run.
            s: State shared with the other handlers.
        """
        pass


class HandlerFunc(Handler):
    """Adapts a plain function ``fn(ctx, state)`` into a Handler."""

    def __init__(self, fn: Callable[[Context, State], Any]):
        self.fn = fn

    @property
    def name(self) -> str:
        return getattr(self.fn, "__qualname__", repr(self.fn))

    async def handle(self, ctx: Context, s: State) -> None:
        result = self.fn(ctx, s)
        if inspect.isawaitable(result):
            await result


class Runner:
    """Runs a chain of handlers, in order, against a single State."""

    def __init__(self, client: ResourceClient, *opts: Option):
        self.handlers: List[Handler] = []
        self.state = State(client, *opts)
        self.status = RunnerStatus.PENDING

    def add_handlers(self, *handlers: Any) -> None:
        """
        Append handlers to the chain. They are executed in the order added.

        Plain callables are wrapped in HandlerFunc.
        """
        for h in handlers:
            if isinstance(h, Handler):
                self.handlers.append(h)
            elif callable(h):
                self.handlers.append(HandlerFunc(h))
            else:
                raise TypeError(f"Not a handler: {h!r}")

    async def run(self, ctx: Optional[Context] = None) -> None:
        """
        Execute the chain of handlers.

        The given context is wrapped in a cancellable child whose cancel
        function becomes the State's stop function. Cancellation is checked
        before each handler. An exception raised by a handler propagates
        as-is and no further handlers run.
        """
        ctx, cancel = with_cancel(ctx)
        self.state._stop = cancel
        self.status = RunnerStatus.RUNNING
        try:
            for h in self.handlers:
                if ctx.done():
                    self.state.log.debug(f"Pipeline stopped before {h.name}")
                    self.status = RunnerStatus.STOPPED
                    return
                try:
                    await h.handle(ctx, self.state)
                except BaseException:
                    self.status = RunnerStatus.ABORTED
                    raise
            self.status = RunnerStatus.COMPLETED
        finally:
            cancel()
