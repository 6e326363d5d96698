"""
Replicate prediction types as seen by the poller.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class JobState(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    # Local only: we stopped polling, the remote job may still be running.
    TIMED_OUT = "timed_out"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> "JobState":
        """Unknown remote statuses count as still processing."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.PROCESSING

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELED, JobState.TIMED_OUT}
)


class JobHandle(BaseModel):
    model_config = {"frozen": True}
    get_url: str
    prediction_id: Optional[str] = None


class PredictionStatus(BaseModel):
    model_config = {"frozen": True}
    state: JobState
    output: Optional[str] = None
    error: Optional[str] = None
    last_log_line: Optional[str] = None
