"""The baton handed to task functions.

``baton.log`` is a ``logging.LoggerAdapter``: structured context is passed as
keyword arguments and ``${name}`` placeholders in the message are filled from
it::

    baton.log.info("executing command: ${cmd}", cmd="git fetch")

Records at INFO and above become entries of the deployment log. Everything is
also forwarded to the stack's Python logger.
"""

from __future__ import annotations

import logging
import sys
import traceback
from collections.abc import Callable, MutableMapping
from string import Template
from typing import Any

from pydantic_core import to_jsonable_python

from dreadnot.models.deployment import Deployment, DeploymentSummary, LogEntry

_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def serialize_error(err: BaseException) -> dict[str, str]:
    """Return a JSON-safe description of an exception."""
    return {
        "name": type(err).__name__,
        "message": str(err),
        "stack": "".join(traceback.format_exception(type(err), err, err.__traceback__)),
    }


def serialize_context(obj: dict[str, Any]) -> dict[str, Any]:
    """Convert log context into JSON-safe values."""
    return {
        key: serialize_error(value)
        if isinstance(value, BaseException)
        else to_jsonable_python(value, fallback=str)
        for key, value in obj.items()
    }


def render_message(msg: object, args: tuple[Any, ...], obj: dict[str, Any]) -> str:
    """Apply %-style args, then substitute ``${name}`` placeholders from obj."""
    text = str(msg)
    if args:
        text = text % args
    if obj and "$" in text:
        text = Template(text).safe_substitute(obj)
    return text


class BatonLogger(logging.LoggerAdapter):
    """Logger adapter that feeds a deployment log.

    Attributes:
        sink: Callable receiving each ``LogEntry`` at or above ``threshold``
        threshold: Minimum level recorded in the deployment log
    """

    def __init__(
        self,
        logger: logging.Logger,
        sink: Callable[[LogEntry], Any],
        extra: dict[str, Any] | None = None,
        threshold: int = logging.INFO,
    ) -> None:
        """Initialize the adapter.

        Args:
            logger: Underlying stack logger
            sink: Receives deployment log entries
            extra: Context attached to every forwarded record
            threshold: Minimum level recorded in the deployment log
        """
        super().__init__(logger, extra or {})
        self.sink = sink
        self.threshold = threshold

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs

    # Parameters are positional-only: every keyword that is not a logging
    # option is log context, including ``level`` and ``msg``.

    def debug(self, msg: object, /, *args: Any, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: object, /, *args: Any, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: object, /, *args: Any, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: object, /, *args: Any, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(
        self, msg: object, /, *args: Any, exc_info: Any = True, **kwargs: Any
    ) -> None:
        self.log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def critical(self, msg: object, /, *args: Any, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, msg, *args, **kwargs)

    def log(self, level: int, msg: object, /, *args: Any, **kwargs: Any) -> None:
        obj = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOGGING_KWARGS}
        if kwargs.get("exc_info") and "err" not in obj:
            exc = sys.exc_info()[1]
            if exc is not None:
                obj["err"] = exc

        text = render_message(msg, args, obj)
        context = serialize_context(obj)

        if level >= self.threshold:
            self.sink(LogEntry(lvl=level, msg=text, obj=context))

        if self.isEnabledFor(level):
            text, kwargs = self.process(text, kwargs)
            kwargs["extra"]["context"] = context
            self.logger.log(level, text, **kwargs)


class Baton:
    """Per-deployment handle passed to every task function.

    Tasks of one deployment share the same baton and may stash values on
    it for later tasks, e.g. ``baton.build_id = ...``.
    """

    def __init__(self, deployment: Deployment, log: BatonLogger) -> None:
        """Create a baton for ``deployment``."""
        self._deployment = deployment
        self.log = log

    @property
    def deployment(self) -> DeploymentSummary:
        """Read-only view of the deployment being run."""
        return self._deployment.summary()
