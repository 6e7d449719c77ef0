import asyncio

import httpx
import pytest

from blog_api.config import endpoints
from blog_api.core.exceptions import (
    AuthError,
    NetworkError,
    NotFoundError,
    RequestCancelledError,
    RequestValidationError,
    ServerError,
    UnknownApiError,
)
from blog_api.execution.middleware import RequestMiddleware
from blog_api.models.common import NotificationKind
from blog_api.models.request import CachePolicy, DispatchOptions, RequestDescriptor, RetryPolicy
from conftest import fail, ok, wait_until

CACHED = DispatchOptions(cache=CachePolicy(enabled=True, ttl_ms=5000))


@pytest.mark.asyncio
async def test_posts_page_cached_for_ttl(dispatcher, transport, clock):
    transport.default = ok({"posts": [{"id": 1}], "page": 1})

    first = await dispatcher.get(endpoints.Blog.LIST, params={"page": 1}, options=CACHED)
    assert len(transport.calls) == 1
    assert transport.calls[0].params == {"page": 1}

    clock.advance_ms(4999)
    second = await dispatcher.get(endpoints.Blog.LIST, params={"page": 1}, options=CACHED)
    assert second == first
    # Вторая выдача - из кэша, транспорт не трогали
    assert len(transport.calls) == 1

    clock.advance_ms(1)
    await dispatcher.get(endpoints.Blog.LIST, params={"page": 1}, options=CACHED)
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_cache_keys_distinguish_params(dispatcher, transport):
    await dispatcher.get("/posts", params={"page": 1}, options=CACHED)
    await dispatcher.get("/posts", params={"page": 2}, options=CACHED)
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_custom_cache_key(dispatcher, transport):
    options = DispatchOptions(cache=CachePolicy(enabled=True, ttl_ms=1000, key="latest-posts"))
    await dispatcher.get("/posts", params={"page": 1}, options=options)
    await dispatcher.get("/posts", params={"page": 2}, options=options)

    assert len(transport.calls) == 1
    assert "latest-posts" in dispatcher.cache


@pytest.mark.asyncio
async def test_caching_disabled_by_default(dispatcher, transport):
    await dispatcher.get("/posts")
    await dispatcher.get("/posts")
    assert len(transport.calls) == 2
    assert len(dispatcher.cache) == 0


@pytest.mark.asyncio
async def test_mutations_never_touch_cache(dispatcher, transport):
    await dispatcher.post("/posts", {"title": "a"}, options=CACHED)
    await dispatcher.post("/posts", {"title": "a"}, options=CACHED)

    assert len(transport.calls) == 2
    assert transport.calls[0].body == {"title": "a"}
    assert len(dispatcher.cache) == 0


@pytest.mark.asyncio
async def test_registry_released_after_success_and_failure(dispatcher, transport):
    await dispatcher.get("/posts")
    assert len(dispatcher.registry) == 0

    transport.script.append(fail(404))
    with pytest.raises(NotFoundError):
        await dispatcher.get("/posts/404")
    assert len(dispatcher.registry) == 0


@pytest.mark.asyncio
async def test_cancel_in_flight_request(dispatcher, transport):
    gate = asyncio.Event()
    transport.script.append(gate)

    task = asyncio.create_task(dispatcher.get("/posts", params={"page": 1}, options=CACHED))
    await wait_until(lambda: transport.calls)

    assert dispatcher.abort("GET", "/posts", {"page": 1}) is True
    with pytest.raises(RequestCancelledError):
        await task

    assert len(dispatcher.cache) == 0
    assert len(dispatcher.registry) == 0


@pytest.mark.asyncio
async def test_abort_all(dispatcher, transport):
    transport.script.extend([asyncio.Event(), asyncio.Event()])
    tasks = [
        asyncio.create_task(dispatcher.get("/posts")),
        asyncio.create_task(dispatcher.get("/projects")),
    ]
    await wait_until(lambda: len(transport.calls) == 2)

    assert dispatcher.abort_all() == 2
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, RequestCancelledError) for r in results)


@pytest.mark.asyncio
async def test_cancelled_request_not_notified(dispatcher, transport, notifier):
    transport.script.append(asyncio.Event())
    task = asyncio.create_task(dispatcher.get("/posts"))
    await wait_until(lambda: transport.calls)
    dispatcher.abort("GET", "/posts")

    with pytest.raises(RequestCancelledError):
        await task
    assert notifier.events == []


@pytest.mark.asyncio
async def test_server_error_retried_through_dispatcher(dispatcher, transport, sleep):
    transport.script.extend([fail(500), fail(502)])
    options = DispatchOptions(retry=RetryPolicy(enabled=True, max_attempts=3, base_delay_ms=300))

    assert await dispatcher.get("/posts", options=options) == {"ok": True}
    assert len(transport.calls) == 3
    assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.3, 0.6])


@pytest.mark.asyncio
async def test_auth_error_single_call_and_notified(dispatcher, transport, notifier):
    transport.default = fail(401, {"message": "Token expired"})
    options = DispatchOptions(retry=RetryPolicy(enabled=True, max_attempts=5))

    with pytest.raises(AuthError):
        await dispatcher.get("/users/profile", options=options)

    assert len(transport.calls) == 1
    assert len(notifier.events) == 1
    assert notifier.events[0].kind == NotificationKind.ERROR
    assert notifier.events[0].message == "Token expired"


@pytest.mark.asyncio
async def test_validation_error_notification_lists_fields(dispatcher, transport, notifier):
    transport.default = fail(400, {"errors": [{"field": "email", "message": "invalid"}]})

    with pytest.raises(RequestValidationError) as exc_info:
        await dispatcher.post("/auth/register", {"email": "x"})

    assert exc_info.value.validation_errors[0].field == "email"
    assert notifier.events[0].message == "email: invalid"


@pytest.mark.asyncio
async def test_suppress_notify(dispatcher, transport, notifier):
    transport.default = fail(500)
    with pytest.raises(ServerError):
        await dispatcher.get("/posts", options=DispatchOptions(suppress_notify=True))
    assert notifier.events == []


@pytest.mark.asyncio
async def test_success_notification_opt_in(dispatcher, notifier):
    await dispatcher.post("/contact", {"msg": "hi"}, options=DispatchOptions(notify_success=True, success_message="Sent"))
    assert notifier.events[0].kind == NotificationKind.SUCCESS
    assert notifier.events[0].message == "Sent"


@pytest.mark.asyncio
async def test_broken_notifier_does_not_break_request(dispatcher, transport):
    class Broken:
        def notify(self, event):
            raise RuntimeError("toast unavailable")

    dispatcher.notifier = Broken()
    transport.default = fail(404)
    with pytest.raises(NotFoundError):
        await dispatcher.get("/posts/1")


@pytest.mark.asyncio
async def test_attempt_timeout_counts_toward_attempts(dispatcher, transport):
    transport.script.extend([asyncio.Event(), asyncio.Event()])
    options = DispatchOptions(timeout=0.01, retry=RetryPolicy(enabled=True, max_attempts=2, base_delay_ms=0))

    with pytest.raises(NetworkError):
        await dispatcher.get("/slow", options=options)
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_transport_exception_is_classified(dispatcher, transport):
    transport.default = httpx.ConnectError("down", request=httpx.Request("GET", "x"))
    with pytest.raises(NetworkError):
        await dispatcher.get("/posts")


@pytest.mark.asyncio
async def test_transform_applies_to_fresh_and_cached(dispatcher, transport):
    transport.default = ok({"data": [1, 2, 3]})
    options = DispatchOptions(cache=CachePolicy(enabled=True, ttl_ms=1000), transform=lambda body: body["data"])

    assert await dispatcher.get("/posts", options=options) == [1, 2, 3]
    assert await dispatcher.get("/posts", options=options) == [1, 2, 3]
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_transform_failure_is_classified(dispatcher, transport, notifier):
    transport.default = ok({"data": []})
    options = DispatchOptions(transform=lambda body: body["items"], notify_success=True)

    with pytest.raises(UnknownApiError) as exc_info:
        await dispatcher.get("/posts", options=options)

    assert isinstance(exc_info.value.__cause__, KeyError)
    assert [e.kind for e in notifier.events] == [NotificationKind.ERROR]


@pytest.mark.asyncio
async def test_on_error_callback(dispatcher, transport):
    seen = []
    transport.default = fail(404)
    with pytest.raises(NotFoundError):
        await dispatcher.get("/posts/x", options=DispatchOptions(on_error=seen.append))
    assert len(seen) == 1 and isinstance(seen[0], NotFoundError)


@pytest.mark.asyncio
async def test_middleware_chain(dispatcher, transport):
    class Tagging(RequestMiddleware):
        async def on_request(self, descriptor):
            return descriptor.model_copy(update={"headers": {**descriptor.headers, "X-Trace": "1"}})

        async def on_response(self, response):
            return response.model_copy(update={"body": {"wrapped": response.body}})

    dispatcher.add_middleware(Tagging())
    result = await dispatcher.get("/posts")

    assert transport.calls[0].headers == {"X-Trace": "1"}
    assert result == {"wrapped": {"ok": True}}


@pytest.mark.asyncio
async def test_middleware_can_recover_error(dispatcher, transport):
    class Fallback(RequestMiddleware):
        async def on_error(self, error):
            if isinstance(error, NotFoundError):
                return {"fallback": True}
            return None

    dispatcher.add_middleware(Fallback())
    transport.default = fail(404)
    assert await dispatcher.get("/posts/x") == {"fallback": True}


@pytest.mark.asyncio
async def test_dispatch_all_partial_failure(dispatcher, transport):
    transport.routes = {"/posts": ok([1]), "/projects": fail(500), "/posts/tags": ok(["py"])}
    batch = [(RequestDescriptor(url=url), None) for url in ("/posts", "/projects", "/posts/tags")]

    assert await dispatcher.dispatch_all(batch, suppress_notify=True) == [[1], None, ["py"]]


@pytest.mark.asyncio
async def test_dispatch_all_abort_on_fail(dispatcher, transport, notifier):
    transport.routes = {"/posts": ok([1]), "/projects": fail(500)}
    batch = [(RequestDescriptor(url=url), None) for url in ("/posts", "/projects")]

    with pytest.raises(ServerError):
        await dispatcher.dispatch_all(batch, abort_on_fail=True, suppress_notify=True)
    assert notifier.events == []


def test_descriptor_identity_key():
    a = RequestDescriptor(url="/posts", method="get", params={"page": 1, "tag": "py"})
    b = RequestDescriptor(url="/posts", method="GET", params={"tag": "py", "page": 1})

    assert a.cancellation_key == b.cancellation_key == 'get:/posts:{"page": 1, "tag": "py"}'
    assert a.cache_key == a.cancellation_key
    assert a.is_read and not RequestDescriptor(url="/posts", method="POST").is_read
