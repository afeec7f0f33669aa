"""Fixed-backoff retry wrapper for outbound report delivery."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Sequence

from loguru import logger

DEFAULT_RETRY_DELAYS_SECONDS: tuple[float, ...] = (2.0, 5.0, 10.0)

SendCallable = Callable[[], Awaitable[Any]]
SleepCallable = Callable[[float], Awaitable[Any]]


class ReportDeliveryError(RuntimeError):
    """Delivery attempt failed; ``retryable`` controls whether backoff continues."""

    def __init__(self, message: str, *, retryable: bool = True, result: Any = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.result = result


class PermanentDeliveryError(ReportDeliveryError):
    """Failure that no amount of retrying will fix (bad recipient, bad payload)."""

    def __init__(self, message: str, *, result: Any = None) -> None:
        super().__init__(message, retryable=False, result=result)


def default_is_retryable(error: BaseException) -> bool:
    if isinstance(error, ReportDeliveryError):
        return error.retryable
    return True


@dataclass(slots=True)
class RetryAttempt:
    attempt_number: int
    delay_seconds: float
    outcome: Literal["success", "failure"]
    error: str | None = None


@dataclass(slots=True)
class DeliveryOutcome:
    ok: bool
    attempt: int
    result: Any = None
    error: BaseException | None = None
    attempts: list[RetryAttempt] = field(default_factory=list)


class DeliveryRetrier:
    """Run a delivery callable with a delay before *every* attempt.

    The default schedule waits 2s, 5s and 10s before attempts 1, 2 and 3.
    Permanent failures end the loop early; everything else is retried
    identically, without jitter.
    """

    def __init__(
        self,
        delays_seconds: Sequence[float] = DEFAULT_RETRY_DELAYS_SECONDS,
        *,
        sleep: SleepCallable = asyncio.sleep,
        is_retryable: Callable[[BaseException], bool] = default_is_retryable,
    ) -> None:
        delays = [max(float(delay), 0.0) for delay in delays_seconds]
        if not delays:
            raise ValueError("DeliveryRetrier needs at least one attempt")
        self._delays = delays
        self._sleep = sleep
        self._is_retryable = is_retryable

    @property
    def max_attempts(self) -> int:
        return len(self._delays)

    @property
    def delays_seconds(self) -> tuple[float, ...]:
        return tuple(self._delays)

    async def run(self, send_fn: SendCallable, *, label: str = "email") -> DeliveryOutcome:
        attempts: list[RetryAttempt] = []
        last_error: BaseException | None = None

        for attempt, delay in enumerate(self._delays, start=1):
            if delay > 0:
                await self._sleep(delay)
            try:
                result = await send_fn()
            except Exception as exc:
                last_error = exc
                attempts.append(
                    RetryAttempt(attempt_number=attempt, delay_seconds=delay, outcome="failure", error=str(exc))
                )
                retryable = self._is_retryable(exc)
                logger.warning(
                    "Delivery attempt failed",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    retryable=retryable,
                    error=str(exc),
                )
                if not retryable:
                    break
                continue

            attempts.append(RetryAttempt(attempt_number=attempt, delay_seconds=delay, outcome="success"))
            return DeliveryOutcome(ok=True, attempt=attempt, result=result, attempts=attempts)

        logger.error(
            "Delivery failed after retries",
            label=label,
            attempts=len(attempts),
            error=str(last_error) if last_error else None,
        )
        return DeliveryOutcome(ok=False, attempt=len(attempts), error=last_error, attempts=attempts)


__all__ = [
    "DEFAULT_RETRY_DELAYS_SECONDS",
    "DeliveryOutcome",
    "DeliveryRetrier",
    "PermanentDeliveryError",
    "ReportDeliveryError",
    "RetryAttempt",
    "default_is_retryable",
]
