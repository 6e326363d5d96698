"""
Application configuration loaded from environment variables.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NEGATIVE_PROMPT = (
    "blurry, low quality, low resolution, out of focus, bad anatomy, extra limbs, "
    "poorly drawn face, deformed eyes, unbalanced lighting, noisy, jpeg artifacts, "
    "double face, mutated hands, grainy, text, watermark"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Replicate API
    replicate_api_token: str = ""
    replicate_base_url: str = "https://api.replicate.com/v1"
    style_model_version: str = "15a3689ee13b0d2616e98820eca31d4c3abcd36672df6afce5cb6feb1d66087d"
    flux_model_version: str = "black-forest-labs/flux-kontext-pro"
    default_negative_prompt: str = DEFAULT_NEGATIVE_PROMPT

    # Timeouts and retries (per attempt; polling has its own budget)
    api_timeout_seconds: float = 30.0
    max_retries: int = 3

    # Polling
    polling_timeout_seconds: float = 180.0
    polling_initial_interval_seconds: float = 0.5
    polling_interval_step_seconds: float = 0.2
    polling_max_interval_seconds: float = 3.0
    polling_max_ticks: int = 180

    # Working resolution sent to each model
    style_max_dimension: int = 768
    flux_max_dimension: int = 1024

    # File upload
    max_upload_bytes: int = 10 * 1024 * 1024

    # Client library
    style_service_base_url: str = "https://ai-style-service.onrender.com/"
    client_timeout_seconds: float = 180.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
