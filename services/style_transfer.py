"""
Style transfer service: resize the upload, run a Replicate prediction, and
return the result at the caller's original size.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from clients.replicate_client import ReplicateClient
from clients.retry import RetryPolicy
from config import Settings
from models.prediction import JobHandle
from models.schemas import FluxStyleRequest, StyleRequest

from .image_processor import ImageProcessor, PreparedImage
from .polling import PollingPolicy, PredictionPoller

logger = logging.getLogger(__name__)


class StyleTransferService:
    def __init__(
        self,
        provider: ReplicateClient,
        style_version: str,
        flux_version: str,
        default_negative_prompt: str,
        image_processor: Optional[ImageProcessor] = None,
        poller: Optional[PredictionPoller] = None,
        style_max_dimension: int = 768,
        flux_max_dimension: int = 1024,
    ):
        self.provider = provider
        self.style_version = style_version
        self.flux_version = flux_version
        self.default_negative_prompt = default_negative_prompt
        self.image_processor = image_processor or ImageProcessor()
        self.poller = poller or PredictionPoller()
        self.style_max_dimension = style_max_dimension
        self.flux_max_dimension = flux_max_dimension

    @classmethod
    def from_settings(cls, settings: Settings) -> "StyleTransferService":
        provider = ReplicateClient(
            api_token=settings.replicate_api_token,
            base_url=settings.replicate_base_url,
            timeout_seconds=settings.api_timeout_seconds,
            retry_policy=RetryPolicy(settings.max_retries),
        )
        poller = PredictionPoller(
            PollingPolicy(
                initial_interval=settings.polling_initial_interval_seconds,
                interval_step=settings.polling_interval_step_seconds,
                max_interval=settings.polling_max_interval_seconds,
                timeout=settings.polling_timeout_seconds,
                max_ticks=settings.polling_max_ticks,
            )
        )
        return cls(
            provider=provider,
            style_version=settings.style_model_version,
            flux_version=settings.flux_model_version,
            default_negative_prompt=settings.default_negative_prompt,
            poller=poller,
            style_max_dimension=settings.style_max_dimension,
            flux_max_dimension=settings.flux_max_dimension,
        )

    async def transfer_style(self, request: StyleRequest) -> bytes:
        """Style-transfer model. Returns JPEG bytes at the upload's size."""
        logger.info(
            "Processing style transfer - Prompt: %s, Strength: %s, Seed: %s",
            request.prompt,
            request.strength,
            request.seed,
        )

        async def submit(image: PreparedImage) -> JobHandle:
            return await self.provider.submit_style_transfer(
                self.style_version,
                image.to_data_uri(),
                prompt=request.prompt,
                negative_prompt=request.negative_prompt or self.default_negative_prompt,
                strength=request.strength,
                inference_steps=request.inference_steps,
                guidance_scale=request.guidance_scale,
                seed=request.seed,
            )

        return await self._run(request.image, self.style_max_dimension, submit, "style transfer")

    async def transfer_flux_style(self, request: FluxStyleRequest) -> bytes:
        """Flux model, higher working resolution. Returns JPEG bytes at the upload's size."""
        logger.info(
            "Processing flux style transfer - Prompt: %s, Aspect Ratio: %s",
            request.prompt,
            request.aspect_ratio,
        )

        async def submit(image: PreparedImage) -> JobHandle:
            return await self.provider.submit_flux_style_transfer(
                self.flux_version,
                image.to_data_uri(),
                prompt=request.prompt,
                aspect_ratio=request.aspect_ratio,
            )

        return await self._run(request.image, self.flux_max_dimension, submit, "flux style transfer")

    async def _run(
        self,
        data: bytes,
        max_dimension: int,
        submit: Callable[[PreparedImage], Awaitable[JobHandle]],
        operation: str,
    ) -> bytes:
        image = await asyncio.to_thread(
            self.image_processor.prepare_input, data, max_dimension, max_dimension
        )
        handle = await submit(image)
        logger.info("%s submitted", operation.capitalize(), extra={"job_id": handle.prediction_id})

        output = await self.poller.wait_for_output(handle, self.provider.get_prediction)
        output_bytes = await self.provider.fetch_output(output)

        final = await asyncio.to_thread(
            self.image_processor.resize_to,
            output_bytes,
            image.original_width,
            image.original_height,
        )
        logger.info(
            "Successfully processed %s",
            operation,
            extra={"job_id": handle.prediction_id, "size": f"{image.original_width}x{image.original_height}"},
        )
        return final
