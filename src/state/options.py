"""Functional options applied to a State when a Runner is built."""

import logging
from typing import TYPE_CHECKING, Callable, Union

if TYPE_CHECKING:
    from state.handler import State

Logger = Union[logging.Logger, logging.LoggerAdapter]

Option = Callable[["State"], None]


def with_logger(log: Logger) -> Option:
    """Set the logger handed to every handler through State.log."""

    def apply(s: "State") -> None:
        s._log = log

    return apply
