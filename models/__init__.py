from .prediction import JobHandle, JobState, PredictionStatus, TERMINAL_STATES
from .schemas import (
    ASPECT_RATIO_MATCH_INPUT,
    FluxStyleRequest,
    StyleRequest,
    StyleTransferErrorResponse,
    is_valid_aspect_ratio,
)

__all__ = [
    "ASPECT_RATIO_MATCH_INPUT",
    "FluxStyleRequest",
    "JobHandle",
    "JobState",
    "PredictionStatus",
    "StyleRequest",
    "StyleTransferErrorResponse",
    "TERMINAL_STATES",
    "is_valid_aspect_ratio",
]
