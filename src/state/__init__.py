"""
State package.

Provides the handler pipeline used to reconcile a single resource: a Runner
that executes Handlers in order against a shared State.
"""

from state.context import Context, with_cancel, with_timeout
from state.handler import (
    Handler,
    HandlerFunc,
    Runner,
    RunnerStatus,
    State,
    StateError,
)
from state.options import Option, with_logger

__all__ = [
    "Context",
    "with_cancel",
    "with_timeout",
    "Handler",
    "HandlerFunc",
    "Runner",
    "RunnerStatus",
    "State",
    "StateError",
    "Option",
    "with_logger",
]
