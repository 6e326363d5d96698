"""
Replicate API client: submit a prediction, read its status, download its output.
"""
import base64
import binascii
import logging
from typing import Any, Dict, Optional

import httpx

from models.prediction import JobHandle, JobState, PredictionStatus

from .errors import ProtocolError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.replicate.com/v1"


def resolve_output(output: Any) -> Optional[str]:
    """Pick the output locator from a prediction. The first list entry wins."""
    if isinstance(output, list):
        if not output:
            return None
        output = output[0]
    if isinstance(output, dict):
        output = output.get("url")
    if isinstance(output, str) and output.strip():
        return output.strip()
    return None


def last_log_line(logs: Any) -> Optional[str]:
    if not isinstance(logs, str):
        return None
    lines = [line for line in logs.splitlines() if line.strip()]
    return lines[-1].strip() if lines else None


def decode_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not sep or not header.endswith(";base64"):
        raise ProtocolError(f"Unsupported inline output: {uri[:60]}")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"Inline output is not valid base64: {e}") from e


class ReplicateClient:
    def __init__(
        self,
        api_token: str,
        base_url: Optional[str] = None,
        timeout_seconds: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.api_token = api_token
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, json=payload, headers=self._headers())

    async def _get(self, url: str, headers: Optional[dict] = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.get(url, headers=headers or {})

    async def submit_style_transfer(
        self,
        version: str,
        image_data_uri: str,
        prompt: str,
        negative_prompt: str,
        strength: float,
        inference_steps: int,
        guidance_scale: float,
        seed: Optional[int] = None,
    ) -> JobHandle:
        model_input: Dict[str, Any] = {
            "prompt": prompt,
            "image": image_data_uri,
            "prompt_strength": strength,
            "num_inference_steps": inference_steps,
            "guidance_scale": guidance_scale,
            "negative_prompt": negative_prompt,
        }
        if seed is not None:
            model_input["seed"] = seed
        return await self.submit_prediction(version, model_input)

    async def submit_flux_style_transfer(
        self,
        version: str,
        image_data_uri: str,
        prompt: str,
        aspect_ratio: str,
    ) -> JobHandle:
        model_input = {
            "prompt": prompt,
            "input_image": image_data_uri,
            "aspect_ratio": aspect_ratio,
        }
        return await self.submit_prediction(version, model_input)

    async def submit_prediction(self, version: str, model_input: Dict[str, Any]) -> JobHandle:
        """Create a prediction. Returns a handle holding the status URL."""
        url = f"{self.base_url}/predictions"
        payload = {"version": version, "input": model_input}
        r = await self.retry_policy.send(lambda: self._post(url, payload), "Replicate submit")
        try:
            data = r.json()
        except ValueError as e:
            raise ProtocolError(f"Replicate submit returned non-JSON body: {r.text[:200]}", r.status_code) from e

        urls = data.get("urls") if isinstance(data, dict) else None
        get_url = urls.get("get") if isinstance(urls, dict) else None
        if not isinstance(get_url, str) or not get_url:
            logger.error("Unexpected response structure from Replicate: %s", r.text[:500])
            raise ProtocolError("Unexpected response structure from Replicate API", r.status_code)

        handle = JobHandle(get_url=get_url, prediction_id=data.get("id"))
        logger.info("Prediction submitted", extra={"job_id": handle.prediction_id, "url": get_url})
        return handle

    async def get_prediction(self, handle: JobHandle) -> PredictionStatus:
        """Read the current status of a prediction once."""
        r = await self.retry_policy.send(
            lambda: self._get(handle.get_url, self._headers()), "Replicate poll"
        )
        try:
            data = r.json()
        except ValueError as e:
            raise ProtocolError(f"Replicate poll returned non-JSON body: {r.text[:200]}", r.status_code) from e
        if not isinstance(data, dict) or "status" not in data:
            raise ProtocolError("Prediction response has no status", r.status_code)

        state = JobState.from_remote(data.get("status"))
        error = data.get("error")
        status = PredictionStatus(
            state=state,
            output=resolve_output(data.get("output")),
            error=str(error) if error else None,
            last_log_line=last_log_line(data.get("logs")),
        )
        if status.last_log_line:
            logger.info("Status: %s - %s", data.get("status"), status.last_log_line)
        else:
            logger.info("Status: %s", data.get("status"))
        return status

    async def fetch_output(self, reference: str) -> bytes:
        """Download the result. Inline data URIs are decoded without a request."""
        if reference.startswith("data:"):
            return decode_data_uri(reference)
        # Only send the token back to Replicate itself, not to the CDN.
        headers = self._headers() if reference.startswith(self.base_url) else None
        r = await self.retry_policy.send(lambda: self._get(reference, headers), "Replicate output download")
        if not r.content:
            raise ProtocolError("Replicate output download returned an empty body", r.status_code)
        return r.content
