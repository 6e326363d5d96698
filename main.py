"""
FastAPI application for AI image style transfer.
"""
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from clients import (
    DecodeError,
    InvalidInputError,
    NetworkError,
    ProtocolError,
    RemoteJobCanceled,
    RemoteJobFailed,
    StyleTransferError,
    StyleTransferTimeout,
)
from config import get_settings
from models import FluxStyleRequest, StyleRequest, StyleTransferErrorResponse
from models.schemas import ASPECT_RATIO_MATCH_INPUT
from services import StyleTransferService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)
# Reduce noisy per-request polling logs from httpx/httpcore.
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

PROBLEM_CONTENT_TYPE = "application/problem+json"
RESULT_CONTENT_TYPE = "image/jpeg"
DISCONNECT_CHECK_SECONDS = 1.0
# Status used when the caller went away before the result was ready.
CLIENT_CLOSED_REQUEST = 499

# Most specific first.
_ERROR_STATUS: list[tuple[type, int, str]] = [
    (InvalidInputError, 400, "Invalid request"),
    (DecodeError, 422, "Unreadable image"),
    (ProtocolError, 502, "Unexpected response from inference API"),
    (RemoteJobFailed, 502, "Prediction failed"),
    (RemoteJobCanceled, 502, "Prediction canceled"),
    (StyleTransferTimeout, 504, "Prediction timed out"),
    (NetworkError, 502, "Inference API unreachable"),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Style service starting")
    settings = get_settings()
    if not settings.replicate_api_token:
        raise RuntimeError("REPLICATE_API_TOKEN is not set")
    app.state.style_service = StyleTransferService.from_settings(settings)
    yield
    logger.info("Style service shutting down")


app = FastAPI(
    title="AI Style Service",
    description="Restyle images with Replicate-hosted diffusion models",
    version="1.0.0",
    lifespan=lifespan,
)


def get_service(request: Request) -> StyleTransferService:
    return request.app.state.style_service


def problem_response(
    status: int, title: str, detail: str, remote_status: Optional[int] = None
) -> JSONResponse:
    body = StyleTransferErrorResponse(
        title=title, status=status, detail=detail, remote_status=remote_status
    )
    return JSONResponse(
        body.model_dump(exclude_none=True), status_code=status, media_type=PROBLEM_CONTENT_TYPE
    )


def error_response(exc: StyleTransferError) -> JSONResponse:
    for error_type, status, title in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return problem_response(status, title, exc.message, exc.status_code)
    return problem_response(500, "Internal error", f"Internal error: {exc.message}", exc.status_code)


def accepts_jpeg(accept: Optional[str]) -> bool:
    """True when the Accept header allows image/jpeg (no header means anything goes).

    The most specific matching entry wins, so ``image/jpeg;q=0, */*`` refuses JPEG.
    """
    if not accept or not accept.strip():
        return True
    quality: dict[str, float] = {}
    for part in accept.split(","):
        media_type, _, params = part.strip().partition(";")
        media_type = media_type.strip().lower()
        if media_type not in ("*/*", "image/*", RESULT_CONTENT_TYPE):
            continue
        q = 1.0
        for param in params.split(";"):
            key, _, value = param.strip().partition("=")
            if key.strip().lower() == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        quality[media_type] = max(q, quality.get(media_type, 0.0))
    for media_type in (RESULT_CONTENT_TYPE, "image/*", "*/*"):
        if media_type in quality:
            return quality[media_type] > 0
    return False


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except ValueError:
        return default


def _parse_int(value: Optional[str], default: Optional[int]) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        return default


def _validation_detail(e: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())


async def _check_request(request: Request, file: Optional[UploadFile], prompt: Optional[str]) -> bytes:
    """Shared checks for both style endpoints. Returns the uploaded bytes."""
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        raise InvalidInputError("Expected multipart/form-data")
    if file is None or not prompt or not prompt.strip():
        raise InvalidInputError("`file` and `prompt` are required")
    content = await file.read()
    if not content:
        raise InvalidInputError("`file` is empty")
    max_bytes = get_settings().max_upload_bytes
    if len(content) > max_bytes:
        raise InvalidInputError(f"File must be under {max_bytes // (1024 * 1024)} MB")
    return content


async def _run_until_disconnect(request: Request, work: Awaitable[bytes]) -> Optional[bytes]:
    """Await ``work``; cancel it and return None if the caller disconnects first."""
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_CHECK_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected; abandoning %s", request.url.path)
                return None
    finally:
        if not task.done():
            task.cancel()


async def _respond(request: Request, work: Awaitable[bytes]) -> Response:
    try:
        result = await _run_until_disconnect(request, work)
    except StyleTransferError as e:
        logger.warning("%s failed: %s", request.url.path, e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error on %s", request.url.path)
        return problem_response(500, "Internal error", f"Internal error: {e}")
    if result is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    return Response(content=result, media_type=RESULT_CONTENT_TYPE)


# ── Routes ───────────────────────────────────────────────────

@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for uptime checks."""
    return JSONResponse({"status": "ok"})


@app.post("/api/style")
async def style_image(
    request: Request,
    file: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    negative_prompt: Optional[str] = Form(None),
    strength: Optional[str] = Form(None),
    inference_steps: Optional[str] = Form(None),
    guidance_scale: Optional[str] = Form(None),
    seed: Optional[str] = Form(None),
    service: StyleTransferService = Depends(get_service),
) -> Response:
    """Restyle an image with the style-transfer model. Returns JPEG at the upload's size."""
    if not accepts_jpeg(request.headers.get("accept")):
        return problem_response(406, "Not acceptable", f"This endpoint only produces {RESULT_CONTENT_TYPE}")
    try:
        content = await _check_request(request, file, prompt)
        style_request = StyleRequest(
            image=content,
            prompt=prompt,
            negative_prompt=negative_prompt,
            strength=_parse_float(strength, 0.5),
            inference_steps=_parse_int(inference_steps, 30),
            guidance_scale=_parse_float(guidance_scale, 7.5),
            seed=_parse_int(seed, None),
        )
    except InvalidInputError as e:
        return error_response(e)
    except ValidationError as e:
        return problem_response(400, "Invalid request", _validation_detail(e))

    return await _respond(request, service.transfer_style(style_request))


@app.post("/api/style-flux")
async def style_image_flux(
    request: Request,
    file: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    aspect_ratio: Optional[str] = Form(None),
    service: StyleTransferService = Depends(get_service),
) -> Response:
    """Restyle an image with the Flux model. Returns JPEG at the upload's size."""
    if not accepts_jpeg(request.headers.get("accept")):
        return problem_response(406, "Not acceptable", f"This endpoint only produces {RESULT_CONTENT_TYPE}")
    try:
        content = await _check_request(request, file, prompt)
        flux_request = FluxStyleRequest(
            image=content,
            prompt=prompt,
            aspect_ratio=aspect_ratio or ASPECT_RATIO_MATCH_INPUT,
        )
    except InvalidInputError as e:
        return error_response(e)
    except ValidationError as e:
        return problem_response(400, "Invalid request", _validation_detail(e))

    return await _respond(request, service.transfer_flux_style(flux_request))
