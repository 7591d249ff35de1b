"""Bounded remote calls."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from .errors import OperationTimeout

# Initialize logger
logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0


async def bounded(call: Awaitable[T], operation: str, timeout: float | None) -> T:
    """Await a collaborator call, converting an expired bound into ``OperationTimeout``.

    Args:
        call: The pending collaborator call
        operation: Short operation name used in logs and the error message
        timeout: Seconds to wait, or None to wait indefinitely

    Returns:
        Whatever the call returns
    """
    try:
        return await asyncio.wait_for(call, timeout)
    except TimeoutError:
        logger.warning("remote_call_timed_out", operation=operation, timeout=timeout)
        raise OperationTimeout(
            f"{operation} did not complete within {timeout:g} seconds"
        ) from None
