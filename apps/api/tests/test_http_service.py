"""Tests for collaborator HTTP retries."""
import httpx
import pytest

from everease.core.exceptions import DependencyError
from everease.services import http_service
from everease.services.http_service import backoff_delay


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    delays = []

    def no_delay(attempt, *, base_delay, max_delay):
        delays.append(attempt)
        return 0

    monkeypatch.setattr(http_service, "backoff_delay", no_delay)
    return delays


def _sequence(*outcomes):
    """request_fn that returns (or raises) each outcome in turn."""
    remaining = list(outcomes)
    request = httpx.Request("GET", "https://collaborator.example.com")

    async def request_fn():
        outcome = remaining.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, request=request)

    return request_fn, remaining


@pytest.mark.asyncio
async def test_retries_retryable_statuses(no_sleep):
    request_fn, remaining = _sequence(503, 429, 200)

    response = await http_service.request_with_retries(request_fn, service="Identity provider")

    assert response.status_code == 200
    assert remaining == []
    assert len(no_sleep) == 2


@pytest.mark.asyncio
async def test_non_retryable_status_returned_immediately(no_sleep):
    request_fn, remaining = _sequence(400, 200)

    response = await http_service.request_with_retries(request_fn, service="Identity provider")

    assert response.status_code == 400
    assert remaining == [200]
    assert no_sleep == []


@pytest.mark.asyncio
async def test_last_retryable_response_is_returned(no_sleep):
    request_fn, _ = _sequence(500, 500, 502)

    response = await http_service.request_with_retries(request_fn, service="Email provider")

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_transport_errors_become_dependency_error(no_sleep):
    request_fn, _ = _sequence(
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
        httpx.ConnectError("refused"),
    )

    with pytest.raises(DependencyError) as exc_info:
        await http_service.request_with_retries(request_fn, service="Email provider")

    assert exc_info.value.message == "Email provider is unreachable"


@pytest.mark.asyncio
async def test_transport_error_then_success(no_sleep):
    request_fn, _ = _sequence(httpx.ConnectError("refused"), 200)

    response = await http_service.request_with_retries(request_fn, service="Email provider")
    assert response.status_code == 200


def test_backoff_delay_is_capped():
    assert backoff_delay(0, base_delay=0.5, max_delay=4.0) <= 0.75
    assert 4.0 <= backoff_delay(10, base_delay=0.5, max_delay=4.0) <= 6.0
    assert backoff_delay(3, base_delay=0, max_delay=4.0) == 0
