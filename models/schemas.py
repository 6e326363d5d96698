import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

ASPECT_RATIO_MATCH_INPUT = "match_input_image"


def is_valid_aspect_ratio(value: Optional[str]) -> bool:
    """Accept "<int>:<int>" or the match_input_image sentinel."""
    if not value:
        return False
    if value == ASPECT_RATIO_MATCH_INPUT:
        return True
    parts = value.split(":")
    if len(parts) != 2:
        return False
    return all(re.fullmatch(r"[+-]?\d+", p.strip(), re.ASCII) for p in parts)


def _clamp(value, low, high):
    return max(low, min(high, value))


class _ImageRequest(BaseModel):
    model_config = {"frozen": True}
    image: bytes = Field(..., description="Encoded source image")
    prompt: str = Field(..., description="Style description")

    @field_validator("image")
    @classmethod
    def _image_not_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("image must not be empty")
        return v

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("prompt must not be empty")
        return v


class StyleRequest(_ImageRequest):
    """Parameters for the style-transfer model. Ranges are clamped, not rejected."""

    negative_prompt: Optional[str] = None
    strength: float = 0.5
    inference_steps: int = 30
    guidance_scale: float = 7.5
    seed: Optional[int] = None

    @field_validator("negative_prompt")
    @classmethod
    def _blank_negative_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v if v and v.strip() else None

    @field_validator("strength")
    @classmethod
    def _clamp_strength(cls, v: float) -> float:
        return _clamp(v, 0.0, 1.0)

    @field_validator("inference_steps")
    @classmethod
    def _clamp_steps(cls, v: int) -> int:
        return _clamp(v, 1, 100)

    @field_validator("guidance_scale")
    @classmethod
    def _clamp_guidance(cls, v: float) -> float:
        return _clamp(v, 1.0, 20.0)


class FluxStyleRequest(_ImageRequest):
    aspect_ratio: str = ASPECT_RATIO_MATCH_INPUT

    @field_validator("aspect_ratio")
    @classmethod
    def _check_aspect_ratio(cls, v: str) -> str:
        if not is_valid_aspect_ratio(v):
            raise ValueError(
                "Invalid aspect_ratio. Supported formats: '16:9', '1:1', '9:16', '4:3', '3:4', etc. "
                "or 'match_input_image' to match the input image aspect ratio"
            )
        return v


class StyleTransferErrorResponse(BaseModel):
    """application/problem+json body returned on failure."""

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    remote_status: Optional[int] = Field(None, description="Status code reported by Replicate")
