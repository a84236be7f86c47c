import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from loguru import logger

from bulk_export_client.errors import BulkExportError, RetryExhaustedError
from bulk_export_client.models import RetryPolicyConfig

T = TypeVar("T")

# Internal marker, unrelated to any code the server sends back
STILL_RUNNING = "still-running"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class StillRunning:
    request_id: Optional[str]
    status: Optional[str]
    code: str = STILL_RUNNING


@dataclass(frozen=True)
class Fatal:
    error: BulkExportError


AttemptOutcome = Union[Success[T], StillRunning, Fatal]


class RetryPolicyExecutor:
    def __init__(
        self,
        config: Optional[RetryPolicyConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_retry: Optional[Callable[[StillRunning, float], Any]] = None,
    ):
        self.config = config or RetryPolicyConfig()
        self.sleep = sleep
        self.on_retry = on_retry
        self.logger = logger

    async def run(self, attempt: Callable[[], Awaitable[AttemptOutcome]]) -> Any:
        """Run `attempt` until it succeeds, fails fatally or the retries run out"""
        if self.config.timeout is None:
            return await self._run_attempts(attempt)
        return await asyncio.wait_for(
            self._run_attempts(attempt), timeout=self.config.timeout
        )

    async def _run_attempts(
        self, attempt: Callable[[], Awaitable[AttemptOutcome]]
    ) -> Any:
        last_signal: Optional[StillRunning] = None

        for retry in range(self.config.max_attempts):
            if retry:
                await self._wait_before_retry(retry - 1, last_signal)

            outcome = await attempt()

            if isinstance(outcome, Success):
                return outcome.value
            if isinstance(outcome, Fatal):
                raise outcome.error
            if isinstance(outcome, StillRunning):
                last_signal = outcome
                continue
            raise TypeError(f"Unexpected attempt outcome: {outcome!r}")

        raise RetryExhaustedError(last_signal, self.config.max_attempts)

    async def _wait_before_retry(self, retry: int, signal: StillRunning) -> None:
        delay = self.config.delay_for(retry)
        self.logger.debug(
            f"Job still {signal.status}, waiting {delay:.2f}s before next attempt"
        )
        if self.on_retry is not None:
            self.on_retry(signal, delay)
        await self.sleep(delay)
