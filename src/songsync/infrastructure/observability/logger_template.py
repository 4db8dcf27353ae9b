"""Shared logger utilities.

USAGE:
    from songsync.infrastructure.observability.logger_template import log_operation

    async with log_operation(logger, "saved_tracks.drain", user_id="abc"):
        await drainer.drain(...)
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, this context manager logs start/end with automatic duration tracking. The **context
# args become extra fields on every line. On exception it logs "<operation>.failed" with the
# traceback and RE-RAISES - it never swallows. Cancellation (CancelledError) is not an
# Exception, so a sibling-cancelled drain logs nothing here; the run logs the real cause.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log operation start/end with automatic timing.

    Logs:
    - {operation}.started with context fields
    - {operation}.completed with context + duration_ms (+ anything the body added)
    - {operation}.failed with context + duration_ms + error details

    The yielded dict can be filled by the body with result fields for the
    completion line.
    """
    start = time.monotonic()
    result_fields: dict[str, Any] = {}
    logger.info(f"{operation}.started", extra=context)

    try:
        yield result_fields
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, **result_fields, "duration_ms": duration_ms},
    )
