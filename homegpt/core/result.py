"""Explicit success-or-error wrapper for gateway calls."""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from homegpt.core.exceptions import GatewayError, classify

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a classified error, never both."""

    value: T | None = None
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def capture(awaitable: Awaitable[T]) -> Result[T]:
    """Await ``awaitable`` and fold any failure into a classified Result.

    Task cancellation is a BaseException and is not captured.
    """
    try:
        return Result(value=await awaitable)
    except GatewayError as e:
        return Result(error=e)
    except Exception as e:
        logger.exception(f"Unclassified failure: {e}")
        return Result(error=classify(e))
