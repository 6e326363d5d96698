"""
Client for the style service's own HTTP API (/api/style, /api/style-flux).

Every call returns an ApiResponse. Failures are reported through
``ApiResponse.error`` with an ApiErrorKind; nothing is raised to the caller.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

import httpx
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from config import get_settings
from models.schemas import (
    ASPECT_RATIO_MATCH_INPUT,
    FluxStyleRequest,
    StyleRequest,
    is_valid_aspect_ratio,
)

from .errors import NetworkError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCEPT_CONTENT_TYPE = "image/jpeg"
# Content types that carry no information; the body is sniffed instead.
_UNTYPED_CONTENT = {"", "application/octet-stream"}


class ApiErrorKind(str, Enum):
    NO_ERROR = "NoError"
    AUTH_ERROR = "AuthError"
    JSON_ERROR = "JsonError"
    NETWORK_ERROR = "NetworkError"
    SERVER_ERROR = "ServerError"
    UNKNOWN_ERROR = "UnknownError"
    INVALID_INPUT = "InvalidInput"


@dataclass(frozen=True)
class ApiError:
    kind: ApiErrorKind
    message: Optional[str] = None

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind.value}: {self.message}"
        return self.kind.value


@dataclass(frozen=True)
class TextureResponse:
    data: bytes
    width: int
    height: int
    content_type: str


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    data: Optional[T] = None
    error: Optional[ApiError] = None
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.data is not None and (self.error is None or self.error.kind is ApiErrorKind.NO_ERROR)

    @classmethod
    def from_error(
        cls, kind: ApiErrorKind, message: Optional[str] = None, status_code: Optional[int] = None
    ) -> "ApiResponse[T]":
        return cls(error=ApiError(kind, message), status_code=status_code)


def _decode_image(data: bytes) -> Tuple[str, int, int]:
    """Return (content type, width, height). Raises ValueError when not an image."""
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return Image.MIME.get(img.format or "", "application/octet-stream"), img.width, img.height
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(str(e)) from e


def _validation_message(e: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())


class StyleServiceClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        settings = get_settings()
        base = base_url or settings.style_service_base_url
        self.base_url = base if base.endswith("/") else base + "/"
        self.timeout_seconds = timeout_seconds or settings.client_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()

    async def style_image(
        self,
        image: Optional[bytes],
        prompt: str,
        negative_prompt: Optional[str] = None,
        strength: float = 0.5,
        inference_steps: int = 30,
        guidance_scale: float = 7.5,
        seed: Optional[int] = None,
    ) -> ApiResponse[TextureResponse]:
        """Apply an artistic style with the standard model."""
        if not image:
            logger.error("Input image cannot be empty")
            return ApiResponse.from_error(ApiErrorKind.INVALID_INPUT, "Input image is empty")
        try:
            request = StyleRequest(
                image=image,
                prompt=prompt,
                negative_prompt=negative_prompt,
                strength=strength,
                inference_steps=inference_steps,
                guidance_scale=guidance_scale,
                seed=seed,
            )
        except ValidationError as e:
            return ApiResponse.from_error(ApiErrorKind.INVALID_INPUT, _validation_message(e))

        fields: Dict[str, Any] = {
            "prompt": request.prompt,
            "strength": f"{request.strength:.2f}",
            "inference_steps": str(request.inference_steps),
            "guidance_scale": f"{request.guidance_scale:.1f}",
        }
        if request.negative_prompt:
            fields["negative_prompt"] = request.negative_prompt
        if request.seed is not None:
            fields["seed"] = str(request.seed)
        return await self._send("api/style", request.image, fields, "Style transfer")

    async def style_image_flux(
        self,
        image: Optional[bytes],
        prompt: str,
        aspect_ratio: str = ASPECT_RATIO_MATCH_INPUT,
    ) -> ApiResponse[TextureResponse]:
        """Apply an artistic style with the Flux model.

        ``aspect_ratio`` is "16:9", "1:1", "9:16", ... or "match_input_image".
        Invalid values fall back to "match_input_image".
        """
        if not image:
            logger.error("Input image cannot be empty")
            return ApiResponse.from_error(ApiErrorKind.INVALID_INPUT, "Input image is empty")
        if not is_valid_aspect_ratio(aspect_ratio):
            logger.warning(
                "AspectRatio value '%s' was invalid, using default '%s'",
                aspect_ratio,
                ASPECT_RATIO_MATCH_INPUT,
            )
            aspect_ratio = ASPECT_RATIO_MATCH_INPUT
        try:
            request = FluxStyleRequest(image=image, prompt=prompt, aspect_ratio=aspect_ratio)
        except ValidationError as e:
            return ApiResponse.from_error(ApiErrorKind.INVALID_INPUT, _validation_message(e))

        fields = {"prompt": request.prompt, "aspect_ratio": request.aspect_ratio}
        return await self._send("api/style-flux", request.image, fields, "Flux style transfer")

    async def _post(self, url: str, fields: Dict[str, Any], files: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(
                url, data=fields, files=files, headers={"Accept": ACCEPT_CONTENT_TYPE}
            )

    async def _send(
        self, path: str, image: bytes, fields: Dict[str, Any], operation: str
    ) -> ApiResponse[TextureResponse]:
        url = self.base_url + path
        try:
            try:
                upload_type, width, height = _decode_image(image)
            except ValueError as e:
                return ApiResponse.from_error(ApiErrorKind.INVALID_INPUT, f"Input is not a readable image: {e}")
            logger.info("Sending %dx%d image (%d bytes) to %s", width, height, len(image), url)

            files = {"file": ("image" + _extension(upload_type), image, upload_type)}
            try:
                r = await self.retry_policy.send(lambda: self._post(url, fields, files), operation)
            except NetworkError as e:
                kind = ApiErrorKind.AUTH_ERROR if e.status_code in (401, 403) else ApiErrorKind.NETWORK_ERROR
                logger.error("%s failed: %s", operation, e.message)
                return ApiResponse.from_error(
                    kind, f"Couldn't get a response from {url}: {e.message}", e.status_code
                )
            return self._read_image_response(r, operation)
        except Exception as e:
            logger.exception("Exception during request to %s", url)
            return ApiResponse.from_error(
                ApiErrorKind.UNKNOWN_ERROR, f"Exception while trying to get a response from {url}: {e}"
            )

    def _read_image_response(self, r: httpx.Response, operation: str) -> ApiResponse[TextureResponse]:
        content_type = r.headers.get("content-type", "").split(";")[0].strip().lower()
        logger.info(
            "Response info - Status: %s, Content-Type: %s, Content-Length: %d",
            r.status_code,
            content_type or "unknown",
            len(r.content),
        )

        if not r.content:
            return ApiResponse.from_error(
                ApiErrorKind.SERVER_ERROR, "Expected image response but the body was empty", r.status_code
            )

        if content_type.startswith("image/") or content_type in _UNTYPED_CONTENT:
            if not content_type.startswith("image/"):
                # Best effort: the server did not label the body, so sniff it.
                logger.warning("%s response has no image content type; sniffing body", operation)
            try:
                decoded_type, width, height = _decode_image(r.content)
            except ValueError as e:
                if content_type in _UNTYPED_CONTENT:
                    return ApiResponse.from_error(
                        ApiErrorKind.SERVER_ERROR,
                        f"Expected image response but received: {content_type or 'unknown'}",
                        r.status_code,
                    )
                return ApiResponse.from_error(
                    ApiErrorKind.UNKNOWN_ERROR, f"Failed to load image data: {e}", r.status_code
                )
            logger.info("Received styled image %dx%d", width, height)
            return ApiResponse(
                data=TextureResponse(
                    data=r.content,
                    width=width,
                    height=height,
                    content_type=content_type if content_type.startswith("image/") else decoded_type,
                ),
                status_code=r.status_code,
            )

        if "json" in content_type:
            try:
                body = r.json()
            except ValueError:
                return ApiResponse.from_error(
                    ApiErrorKind.JSON_ERROR, f"Couldn't parse response body: {r.text[:500]}", r.status_code
                )
            detail = body.get("detail") if isinstance(body, dict) else body
            return ApiResponse.from_error(
                ApiErrorKind.SERVER_ERROR,
                f"Expected image response but received: {content_type}. Response: {detail}",
                r.status_code,
            )

        return ApiResponse.from_error(
            ApiErrorKind.SERVER_ERROR,
            f"Expected image response but received: {content_type}. Response: {r.text[:500]}",
            r.status_code,
        )


def _extension(content_type: str) -> str:
    return {
        "image/jpeg": ".jpg",
        "image/png": ".png",
        "image/webp": ".webp",
        "image/gif": ".gif",
        "image/bmp": ".bmp",
    }.get(content_type, ".png")
