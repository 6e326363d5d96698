from __future__ import annotations

import base64

import httpx
import pytest

from clients.errors import NetworkError, ProtocolError
from clients.replicate_client import ReplicateClient, last_log_line, resolve_output
from models.prediction import JobHandle, JobState
from tests.mocks.http_client import install_transport, prediction, submitted

HANDLE = JobHandle(get_url="https://api.replicate.com/v1/predictions/pred-1", prediction_id="pred-1")


@pytest.fixture
def client() -> ReplicateClient:
    return ReplicateClient(api_token="r8-token", timeout_seconds=5)


@pytest.mark.asyncio
async def test_submit_style_transfer_payload(monkeypatch, client):
    transport = install_transport(monkeypatch, [submitted()])

    handle = await client.submit_style_transfer(
        "v123",
        "data:image/png;base64,AAAA",
        prompt="anime style",
        negative_prompt="blurry",
        strength=0.5,
        inference_steps=30,
        guidance_scale=7.5,
        seed=42,
    )

    assert handle.get_url == "https://api.replicate.com/v1/predictions/pred-1"
    assert handle.prediction_id == "pred-1"
    call = transport.calls[0]
    assert call.method == "POST"
    assert call.url == "https://api.replicate.com/v1/predictions"
    assert call.headers["Authorization"] == "Bearer r8-token"
    assert call.kwargs["json"] == {
        "version": "v123",
        "input": {
            "prompt": "anime style",
            "image": "data:image/png;base64,AAAA",
            "prompt_strength": 0.5,
            "num_inference_steps": 30,
            "guidance_scale": 7.5,
            "negative_prompt": "blurry",
            "seed": 42,
        },
    }
    assert transport.client_kwargs[0]["timeout"] == 5


@pytest.mark.asyncio
async def test_seed_is_omitted_when_not_provided(monkeypatch, client):
    transport = install_transport(monkeypatch, [submitted()])

    await client.submit_style_transfer(
        "v123", "data:x", prompt="p", negative_prompt="n", strength=0.1,
        inference_steps=10, guidance_scale=2.0,
    )

    assert "seed" not in transport.calls[0].kwargs["json"]["input"]


@pytest.mark.asyncio
async def test_submit_flux_payload(monkeypatch, client):
    transport = install_transport(monkeypatch, [submitted()])

    await client.submit_flux_style_transfer(
        "black-forest-labs/flux-kontext-pro", "data:x", prompt="90s cartoon", aspect_ratio="16:9"
    )

    assert transport.calls[0].kwargs["json"] == {
        "version": "black-forest-labs/flux-kontext-pro",
        "input": {"prompt": "90s cartoon", "input_image": "data:x", "aspect_ratio": "16:9"},
    }


@pytest.mark.asyncio
async def test_submit_without_status_url_is_protocol_error(monkeypatch, client):
    transport = install_transport(
        monkeypatch, [httpx.Response(201, json={"id": "pred-1", "status": "starting"})]
    )

    with pytest.raises(ProtocolError):
        await client.submit_prediction("v", {"prompt": "p"})

    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_submit_non_json_is_protocol_error(monkeypatch, client):
    install_transport(monkeypatch, [httpx.Response(200, text="<html>oops</html>")])

    with pytest.raises(ProtocolError):
        await client.submit_prediction("v", {})


@pytest.mark.asyncio
async def test_submit_client_error_is_not_retried(monkeypatch, client):
    transport = install_transport(monkeypatch, [httpx.Response(422, json={"detail": "bad input"})])

    with pytest.raises(NetworkError) as exc_info:
        await client.submit_prediction("v", {})

    assert exc_info.value.status_code == 422
    assert "bad input" in exc_info.value.body
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_submit_resends_full_body_after_connection_failure(monkeypatch, client):
    transport = install_transport(
        monkeypatch, [httpx.ConnectError("connection refused"), submitted()]
    )

    await client.submit_prediction("v", {"prompt": "p"})

    assert len(transport.calls) == 2
    assert transport.calls[0].kwargs["json"] == transport.calls[1].kwargs["json"]


@pytest.mark.asyncio
async def test_get_prediction_reads_status_output_and_log_tail(monkeypatch, client):
    transport = install_transport(
        monkeypatch,
        [
            prediction(
                "succeeded",
                output=["https://replicate.delivery/a.png", "https://replicate.delivery/b.png"],
                logs="step 1\nstep 2\n\n",
            )
        ],
    )

    status = await client.get_prediction(HANDLE)

    assert status.state is JobState.SUCCEEDED
    assert status.output == "https://replicate.delivery/a.png"
    assert status.last_log_line == "step 2"
    assert transport.calls[0].url == HANDLE.get_url
    assert transport.calls[0].headers["Authorization"] == "Bearer r8-token"


@pytest.mark.asyncio
async def test_get_prediction_failed_carries_error(monkeypatch, client):
    install_transport(monkeypatch, [prediction("failed", error="CUDA out of memory")])

    status = await client.get_prediction(HANDLE)

    assert status.state is JobState.FAILED
    assert status.error == "CUDA out of memory"
    assert status.output is None


@pytest.mark.asyncio
async def test_get_prediction_without_status_is_protocol_error(monkeypatch, client):
    install_transport(monkeypatch, [httpx.Response(200, json={"id": "pred-1"})])

    with pytest.raises(ProtocolError):
        await client.get_prediction(HANDLE)


@pytest.mark.asyncio
async def test_fetch_output_downloads_without_token_from_cdn(monkeypatch, client):
    transport = install_transport(monkeypatch, [httpx.Response(200, content=b"jpeg-bytes")])

    data = await client.fetch_output("https://replicate.delivery/out.jpg")

    assert data == b"jpeg-bytes"
    assert "Authorization" not in transport.calls[0].headers


@pytest.mark.asyncio
async def test_fetch_output_sends_token_to_replicate_files_api(monkeypatch, client):
    transport = install_transport(monkeypatch, [httpx.Response(200, content=b"x")])

    await client.fetch_output("https://api.replicate.com/v1/files/abc/download")

    assert transport.calls[0].headers["Authorization"] == "Bearer r8-token"


@pytest.mark.asyncio
async def test_fetch_output_decodes_inline_data_without_network(monkeypatch, client):
    transport = install_transport(monkeypatch, [])
    payload = base64.b64encode(b"inline-image").decode()

    data = await client.fetch_output(f"data:image/png;base64,{payload}")

    assert data == b"inline-image"
    assert transport.calls == []


@pytest.mark.asyncio
async def test_fetch_output_rejects_bad_inline_data(monkeypatch, client):
    install_transport(monkeypatch, [])

    with pytest.raises(ProtocolError):
        await client.fetch_output("data:image/png,not-base64")


def test_resolve_output_shapes():
    assert resolve_output("https://x/a.png") == "https://x/a.png"
    assert resolve_output(["https://x/a.png", "https://x/b.png"]) == "https://x/a.png"
    assert resolve_output([{"url": "https://x/c.png"}]) == "https://x/c.png"
    assert resolve_output({"url": "https://x/d.png"}) == "https://x/d.png"
    assert resolve_output([]) is None
    assert resolve_output(None) is None
    assert resolve_output("") is None


def test_last_log_line():
    assert last_log_line("a\nb\n  \n") == "b"
    assert last_log_line("") is None
    assert last_log_line(None) is None
