from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from src.generators import ServiceConfig, ServiceStatus, SubmissionError, TransientQueryError
from src.generators.seed3d_integration import FalSeed3DIntegration
from src.models.asset_model import RemoteJobStatus


def mock_response(status: int = 200, json_data: Any = None, text: str = "", body: bytes = b"") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    response.read = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.fixture
def integration() -> FalSeed3DIntegration:
    config = ServiceConfig(api_key="test-key", download_retry_attempts=2, download_retry_delay_seconds=0)
    service = FalSeed3DIntegration(config)
    service.session = MagicMock(closed=False)
    return service


def test_service_config_urls() -> None:
    config = ServiceConfig(api_key="k")

    assert config.submit_url == "https://queue.fal.run/fal-ai/bytedance/seed3d/image-to-3d"
    assert config.app_id == "fal-ai/bytedance"
    assert config.status_url("abc") == "https://queue.fal.run/fal-ai/bytedance/requests/abc/status"
    assert config.request_url("abc") == "https://queue.fal.run/fal-ai/bytedance/requests/abc"


def test_service_config_rejects_short_endpoint() -> None:
    with pytest.raises(ValueError, match="Invalid endpoint id"):
        _ = ServiceConfig(api_key="k", endpoint="seed3d").app_id


@pytest.mark.asyncio
async def test_submit_returns_request_id(integration: FalSeed3DIntegration) -> None:
    integration.session.post.return_value = mock_response(200, {"request_id": "abc-123", "status": "IN_QUEUE"})

    request_id = await integration.submit("data:image/jpeg;base64,AAAA")

    assert request_id == "abc-123"
    args, kwargs = integration.session.post.call_args
    assert args[0] == "https://queue.fal.run/fal-ai/bytedance/seed3d/image-to-3d"
    assert kwargs["headers"]["Authorization"] == "Key test-key"
    assert kwargs["json"] == {"image_url": "data:image/jpeg;base64,AAAA"}


@pytest.mark.asyncio
async def test_submit_rejected(integration: FalSeed3DIntegration) -> None:
    integration.session.post.return_value = mock_response(401, text="Unauthorized")

    with pytest.raises(SubmissionError) as exc_info:
        await integration.submit("data:image/jpeg;base64,AAAA")

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Seed3D request failed: 401"


@pytest.mark.asyncio
async def test_submit_without_request_id(integration: FalSeed3DIntegration) -> None:
    integration.session.post.return_value = mock_response(200, {"status": "IN_QUEUE"})

    with pytest.raises(SubmissionError, match="no request id"):
        await integration.submit("data:image/jpeg;base64,AAAA")


@pytest.mark.asyncio
async def test_submit_network_error(integration: FalSeed3DIntegration) -> None:
    integration.session.post.side_effect = aiohttp.ClientConnectionError("connection refused")

    with pytest.raises(SubmissionError, match="Could not reach the Seed3D queue"):
        await integration.submit("data:image/jpeg;base64,AAAA")


@pytest.mark.asyncio
async def test_get_status(integration: FalSeed3DIntegration) -> None:
    integration.session.get.return_value = mock_response(
        200,
        {
            "status": "IN_PROGRESS",
            "queue_position": 3,
            "logs": [{"message": "Loading weights"}, {"message": ""}, "plain line"],
        },
    )

    status = await integration.get_status("abc")

    assert status.status == RemoteJobStatus.IN_PROGRESS
    assert status.position == 3
    assert status.logs == ["Loading weights", "plain line"]
    args, kwargs = integration.session.get.call_args
    assert args[0] == "https://queue.fal.run/fal-ai/bytedance/requests/abc/status"
    assert kwargs["params"] == {"logs": "1"}


@pytest.mark.asyncio
async def test_get_status_unknown_and_error(integration: FalSeed3DIntegration) -> None:
    integration.session.get.return_value = mock_response(
        200, {"status": "PAUSED", "error": {"detail": [{"msg": "bad input"}]}}
    )

    status = await integration.get_status("abc")

    assert status.status == RemoteJobStatus.UNKNOWN
    assert status.error == "bad input"


@pytest.mark.asyncio
async def test_get_status_http_error_is_transient(integration: FalSeed3DIntegration) -> None:
    integration.session.get.return_value = mock_response(502, text="Bad gateway")

    with pytest.raises(TransientQueryError) as exc_info:
        await integration.get_status("abc")
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_get_result_unwraps_envelope(integration: FalSeed3DIntegration) -> None:
    integration.session.get.return_value = mock_response(
        200, {"response": {"model": {"url": "https://cdn.example/m.zip"}, "usage_tokens": 1200}}
    )

    result = await integration.get_result("abc")

    assert result.model_url == "https://cdn.example/m.zip"
    assert result.usage_tokens == 1200
    assert integration.session.get.call_args.args[0] == "https://queue.fal.run/fal-ai/bytedance/requests/abc"


@pytest.mark.asyncio
async def test_get_result_plain_payload(integration: FalSeed3DIntegration) -> None:
    integration.session.get.return_value = mock_response(200, {"model": {"url": "https://cdn.example/m.zip"}})

    result = await integration.get_result("abc")

    assert result.model_url == "https://cdn.example/m.zip"
    assert result.usage_tokens is None


@pytest.mark.asyncio
async def test_download_archive_retries(integration: FalSeed3DIntegration) -> None:
    integration.session.get.side_effect = [mock_response(503), mock_response(200, body=b"PK-archive")]

    body = await integration.download_archive("https://cdn.example/m.zip")

    assert body == b"PK-archive"
    assert integration.session.get.call_count == 2


@pytest.mark.asyncio
async def test_download_archive_gives_up(integration: FalSeed3DIntegration) -> None:
    integration.session.get.side_effect = [mock_response(503), mock_response(200, body=b"")]

    with pytest.raises(TransientQueryError, match="empty body"):
        await integration.download_archive("https://cdn.example/m.zip")


@pytest.mark.asyncio
async def test_check_health_depends_on_key() -> None:
    assert await FalSeed3DIntegration(ServiceConfig(api_key="k")).check_health() == ServiceStatus.AVAILABLE
    assert await FalSeed3DIntegration(ServiceConfig(api_key="")).check_health() == ServiceStatus.UNAVAILABLE


@pytest.mark.asyncio
async def test_session_lifecycle() -> None:
    async with FalSeed3DIntegration(ServiceConfig(api_key="k")) as service:
        assert isinstance(service.session, aiohttp.ClientSession)
        session = service.session

    assert session.closed
    assert service.session is None
