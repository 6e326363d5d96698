"""
Drives a submitted prediction to a terminal state.

The poller sleeps, asks for the status once, and either stops or widens the
interval by a fixed step up to a cap. It knows nothing about HTTP: the status
reader is any coroutine taking a JobHandle.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional

from clients.errors import (
    ProtocolError,
    RemoteJobCanceled,
    RemoteJobFailed,
    StyleTransferTimeout,
)
from models.prediction import JobHandle, JobState, PredictionStatus

logger = logging.getLogger(__name__)

StatusReader = Callable[[JobHandle], Awaitable[PredictionStatus]]


@dataclass(frozen=True)
class PollingPolicy:
    initial_interval: float = 0.5
    interval_step: float = 0.2
    max_interval: float = 3.0
    timeout: float = 180.0
    max_ticks: int = 180

    def __post_init__(self) -> None:
        if self.max_ticks < 1:
            raise ValueError("max_ticks must be at least 1")
        if self.initial_interval < 0 or self.interval_step < 0:
            raise ValueError("polling intervals must not be negative")

    def next_interval(self, interval: float) -> float:
        # Rounded so 0.5 + 0.2 + ... does not drift into 0.8999999.
        return round(min(interval + self.interval_step, self.max_interval), 6)

    def intervals(self, count: int) -> Iterator[float]:
        """The first ``count`` sleep intervals, in seconds."""
        interval = self.initial_interval
        for _ in range(count):
            yield interval
            interval = self.next_interval(interval)


class PredictionPoller:
    def __init__(
        self,
        policy: Optional[PollingPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy or PollingPolicy()
        self._sleep = sleep
        self._clock = clock

    async def wait_for_output(self, handle: JobHandle, read_status: StatusReader) -> str:
        """Poll until the prediction is terminal. Returns the output locator."""
        policy = self.policy
        started = self._clock()
        interval = policy.initial_interval

        for tick in range(1, policy.max_ticks + 1):
            await self._sleep(interval)
            status = await read_status(handle)

            if status.state is JobState.SUCCEEDED:
                if not status.output:
                    raise ProtocolError("Prediction succeeded but returned no usable output")
                logger.info("Output URL: %s", status.output[:80], extra={"job_id": handle.prediction_id})
                return status.output
            if status.state is JobState.FAILED:
                message = status.error or "Unknown error"
                logger.warning("Prediction failed: %s", message, extra={"job_id": handle.prediction_id})
                raise RemoteJobFailed(f"Prediction failed: {message}")
            if status.state is JobState.CANCELED:
                logger.warning("Prediction was canceled", extra={"job_id": handle.prediction_id})
                raise RemoteJobCanceled("Prediction was canceled")

            if self._clock() - started >= policy.timeout:
                break
            interval = policy.next_interval(interval)

        elapsed = self._clock() - started
        logger.warning(
            "Prediction timed out after %.0fs (%d polls)",
            elapsed,
            tick,
            extra={"job_id": handle.prediction_id},
        )
        raise StyleTransferTimeout(
            f"Prediction timed out after {policy.timeout:.0f} seconds. "
            "The model may be experiencing high demand."
        )
