"""Run best-effort cleanup callables and log whatever they raise."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

_CLOSED_FILE_MESSAGE = "I/O operation on closed file"


def _is_closed_error(err: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        if isinstance(current, ValueError) and _CLOSED_FILE_MESSAGE in str(current):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def do(logger: logging.Logger, doer: Callable[[], Any], fmt: str, *args: Any) -> None:
    """Call ``doer`` and log any exception it raises, prefixed with ``fmt % args``.

    Errors from operating on an already closed file are ignored: a double
    close is harmless.
    """
    try:
        doer()
    except Exception as err:  # noqa: BLE001 - every error is logged, none propagates
        if _is_closed_error(err):
            return
        context = fmt % args if args else fmt
        message = f"{context}: {err}"
        logger.error("detected do error: %s", message, extra={"err": message})