"""Bounded waits for collaborator calls and parses."""
import asyncio
from typing import Any, Awaitable, Optional, TypeVar

import structlog

from price_import.config import settings
from price_import.errors.exceptions import OperationTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def with_timeout(
    awaitable: Awaitable[T],
    operation: str,
    timeout: Optional[float] = None,
    **context: Any,
) -> T:
    """Await with a deadline.

    Args:
        awaitable: Collaborator call or parse to bound
        operation: Short name used in the error and log event
        timeout: Seconds; defaults to PRICE_IMPORT_OPERATION_TIMEOUT_SECONDS
        **context: Identifiers added to the error details

    Raises:
        OperationTimeoutError: If the deadline passes (no retry)
    """
    seconds = timeout if timeout is not None else settings.operation_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.error("operation_timed_out", operation=operation, timeout_seconds=seconds, **context)
        raise OperationTimeoutError(
            f"{operation} timed out after {seconds}s",
            details={"operation": operation, "timeout_seconds": seconds, **context},
        ) from e
