"""Error policies shared by the campaign services.

Two policies coexist:
- fail-open: ``best_effort`` logs and swallows a failure so the operation
  still returns a result derived from the durable store.
- fail-closed: ``wraps_errors`` lets the failure propagate, wrapped into a
  CampaignServiceError carrying a stable code.
"""

import functools
from typing import Any, Awaitable, Callable, TypeVar

from aicampaign.app.core.logging import get_logger
from aicampaign.app.exceptions import CampaignServiceError

logger = get_logger(__name__)

T = TypeVar("T")


async def best_effort(action: str, awaitable: Awaitable[T], default: Any = None) -> T | Any:
    """Await ``awaitable``; on any error log it and return ``default``.

    Args:
        action: Short description used in the log line
        awaitable: The cache operation to run
        default: Value returned when the operation fails
    """
    try:
        return await awaitable
    except Exception as e:
        logger.warning(f"Best-effort cache operation failed ({action}): {e}")
        return default


def wraps_errors(
    code: str,
    message: str,
    error_cls: type[CampaignServiceError] = CampaignServiceError,
    passthrough: tuple[type[BaseException], ...] = (CampaignServiceError,),
) -> Callable:
    """Wrap unexpected exceptions of a service coroutine.

    Exceptions listed in ``passthrough`` are re-raised untouched; this keeps
    validation and repository errors (with the store's own code) intact.
    Anything else becomes ``error_cls(message, code)`` chained to the cause.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except passthrough:
                raise
            except Exception as e:
                logger.error(f"{message}: {e}")
                raise error_cls(message, code, e) from e

        return wrapper

    return decorator
