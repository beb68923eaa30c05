from __future__ import annotations

import logging
from typing import Any


def _format_context(
    *,
    trace_id: str | None,
    session_key: str | None,
    phase: Any = None,
) -> str:
    return (
        f"trace_id={trace_id or '-'} "
        f"session={session_key or '-'} "
        f"phase={getattr(phase, 'value', phase) or '-'}"
    )


def log_info(logger: logging.Logger, message: str, *, trace_id=None, session_key=None, phase=None) -> None:
    logger.info("%s %s", _format_context(trace_id=trace_id, session_key=session_key, phase=phase), message)


def log_warning(logger: logging.Logger, message: str, *, trace_id=None, session_key=None, phase=None) -> None:
    logger.warning("%s %s", _format_context(trace_id=trace_id, session_key=session_key, phase=phase), message)


def log_error(
    logger: logging.Logger,
    message: str,
    *,
    trace_id=None,
    session_key=None,
    phase=None,
    exc_info: bool | Exception = False,
) -> None:
    logger.error(
        "%s %s",
        _format_context(trace_id=trace_id, session_key=session_key, phase=phase),
        message,
        exc_info=exc_info,
    )

