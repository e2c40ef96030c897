# bookwise/utils/timeout_protection.py
"""
Timeout protection for collaborator calls (external calendars, meeting
providers). A slow third party must never stall a booking decision.
"""
import asyncio
from typing import Any, Awaitable, Optional

from bookwise.core.logging import get_logger

logger = get_logger(__name__)

async def with_timeout(coro: Awaitable, timeout_seconds: float = 3.0, default_value: Any = None,
                       operation: Optional[str] = None):
    """
    Execute a coroutine with a timeout, returning default_value if it times out
    or fails.

    Args:
        coro: The coroutine to execute
        timeout_seconds: Maximum time to wait
        default_value: Value to return on timeout or failure
        operation: Label used in log events

    Returns:
        Result of coroutine or default_value
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("operation_timeout", operation=operation, timeout=timeout_seconds)
        return default_value
    except Exception as e:
        logger.warning("operation_failed", operation=operation, error=str(e),
                       error_type=type(e).__name__)
        return default_value
