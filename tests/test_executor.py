from unittest.mock import AsyncMock

import httpx
import pytest

from blog_api.core.exceptions import AuthError, NetworkError, RequestCancelledError, ServerError
from blog_api.execution.classifier import classify_status
from blog_api.execution.executor import RetryController
from blog_api.models.request import RetryPolicy

POLICY = RetryPolicy(enabled=True, max_attempts=3, base_delay_ms=100, max_delay_ms=10_000)


def sleeps(sleep: AsyncMock):
    return [c.args[0] for c in sleep.await_args_list]


@pytest.mark.asyncio
async def test_server_error_retried_exactly_max_attempts():
    sleep = AsyncMock()
    controller = RetryController(sleep=sleep)
    request_fn = AsyncMock(side_effect=classify_status(500))

    with pytest.raises(ServerError):
        await controller.execute(request_fn, POLICY)

    assert request_fn.await_count == 3
    # base, 2*base
    assert sleeps(sleep) == pytest.approx([0.1, 0.2])


@pytest.mark.asyncio
async def test_auth_error_never_retried():
    sleep = AsyncMock()
    controller = RetryController(sleep=sleep)
    request_fn = AsyncMock(side_effect=classify_status(401))

    with pytest.raises(AuthError):
        await controller.execute(request_fn, RetryPolicy(enabled=True, max_attempts=10, base_delay_ms=100))

    assert request_fn.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_transient_then_success():
    # 500 (Retry) -> glitch (Retry) -> OK
    controller = RetryController(sleep=AsyncMock())
    request_fn = AsyncMock(side_effect=[
        classify_status(503),
        httpx.ReadError("Connection reset", request=httpx.Request("GET", "x")),
        {"ok": True},
    ])

    assert await controller.execute(request_fn, POLICY) == {"ok": True}
    assert request_fn.await_count == 3


@pytest.mark.asyncio
async def test_raw_transport_errors_are_classified():
    controller = RetryController(sleep=AsyncMock())
    request_fn = AsyncMock(side_effect=httpx.ConnectError("down", request=httpx.Request("GET", "x")))

    with pytest.raises(NetworkError) as exc_info:
        await controller.execute(request_fn, POLICY)

    assert request_fn.await_count == 3
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_disabled_policy_makes_single_attempt():
    sleep = AsyncMock()
    controller = RetryController(sleep=sleep)
    request_fn = AsyncMock(side_effect=classify_status(500))

    with pytest.raises(ServerError):
        await controller.execute(request_fn, RetryPolicy(enabled=False, max_attempts=5))

    assert request_fn.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_non_retryable_status_blacklist():
    controller = RetryController(sleep=AsyncMock())
    request_fn = AsyncMock(side_effect=classify_status(503))
    policy = RetryPolicy(enabled=True, max_attempts=4, non_retryable_statuses=frozenset({401, 403, 503}))

    with pytest.raises(ServerError):
        await controller.execute(request_fn, policy)

    assert request_fn.await_count == 1


@pytest.mark.asyncio
async def test_delay_is_capped():
    sleep = AsyncMock()
    controller = RetryController(sleep=sleep)
    request_fn = AsyncMock(side_effect=classify_status(502))
    policy = RetryPolicy(enabled=True, max_attempts=5, base_delay_ms=1000, max_delay_ms=3000)

    with pytest.raises(ServerError):
        await controller.execute(request_fn, policy)

    assert sleeps(sleep) == pytest.approx([1.0, 2.0, 3.0, 3.0])


@pytest.mark.asyncio
async def test_on_retry_callback_receives_attempt_number():
    seen = []
    controller = RetryController(sleep=AsyncMock())
    request_fn = AsyncMock(side_effect=[classify_status(500), classify_status(500), "done"])

    result = await controller.execute(request_fn, POLICY, on_retry=lambda error, n: seen.append((error.kind.value, n)))

    assert result == "done"
    assert seen == [("server", 1), ("server", 2)]


@pytest.mark.asyncio
async def test_cancellation_is_not_retried():
    controller = RetryController(sleep=AsyncMock())
    request_fn = AsyncMock(side_effect=RequestCancelledError("k"))

    with pytest.raises(RequestCancelledError):
        await controller.execute(request_fn, POLICY)

    assert request_fn.await_count == 1
