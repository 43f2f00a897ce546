"""Diagnostics sink for unexpected failures.

Reporting is best-effort: a failing reporter must never block the request
or mask the error being reported.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ErrorReporter(Protocol):
    def capture_exception(
        self,
        exc: BaseException,
        *,
        tags: dict[str, str],
        extra: dict[str, Any],
    ) -> None: ...


class LoggingErrorReporter:
    """Reports exceptions through the ``chorus.reporting`` logger."""

    def capture_exception(
        self,
        exc: BaseException,
        *,
        tags: dict[str, str],
        extra: dict[str, Any],
    ) -> None:
        logger.error(
            "Unexpected error %s (%s)",
            type(exc).__name__,
            ", ".join(f"{k}={v}" for k, v in sorted(tags.items())),
            exc_info=exc,
        )
        logger.debug("Error context: %s", extra)


def report_exception(
    reporter: ErrorReporter | None,
    exc: BaseException,
    *,
    tags: dict[str, str],
    extra: dict[str, Any],
) -> None:
    """Send *exc* to *reporter*, logging (never raising) reporter failures."""
    if reporter is None:
        return
    try:
        reporter.capture_exception(exc, tags=tags, extra=extra)
    except Exception:
        logger.exception("Error reporter failed while reporting %s", type(exc).__name__)
