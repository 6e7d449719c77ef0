import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from blog_api.core.contracts import Notifier, Transport
from blog_api.core.exceptions import ApiBaseError, ClassifiedError, RequestCancelledError
from blog_api.execution.cancellation import CancellationRegistry, CancellationToken
from blog_api.execution.classifier import classify_error, classify_status
from blog_api.execution.executor import RetryController
from blog_api.execution.middleware import RequestMiddleware
from blog_api.models.request import (
    CachePolicy,
    DispatchOptions,
    RequestDescriptor,
    RetryPolicy,
    make_request_key,
)
from blog_api.services.notifications import (
    build_error_notification,
    build_success_notification,
    safe_notify,
)
from blog_api.storage.cache import CACHE_MISS, CacheStore

logger = logging.getLogger(__name__)

BatchItem = Tuple[RequestDescriptor, Optional[DispatchOptions]]


class RequestDispatcher:
    """
    Единственная точка выхода в сеть.
    Порядок шагов фиксирован: cache lookup -> register token -> retry(transport) ->
    cache store -> release token -> результат / классифицированная ошибка.
    """

    def __init__(
        self,
        transport: Transport,
        settings: Any,
        cache: Optional[CacheStore] = None,
        registry: Optional[CancellationRegistry] = None,
        retry_controller: Optional[RetryController] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.transport = transport
        self.settings = settings
        self.cache = cache if cache is not None else CacheStore()
        self.registry = registry if registry is not None else CancellationRegistry()
        self.retry_controller = retry_controller if retry_controller is not None else RetryController()
        self.notifier = notifier
        self._middlewares: List[RequestMiddleware] = []

        self.default_cache = CachePolicy(enabled=settings.CACHE_ENABLED, ttl_ms=settings.CACHE_TTL_MS)
        self.default_retry = RetryPolicy.from_settings(settings)

    def add_middleware(self, middleware: RequestMiddleware) -> None:
        self._middlewares.append(middleware)

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    async def dispatch(self, descriptor: RequestDescriptor, options: Optional[DispatchOptions] = None) -> Any:
        options = options or DispatchOptions()
        cache_policy = options.cache or self.default_cache
        retry_policy = options.retry or self.default_retry
        timeout = options.timeout if options.timeout is not None else self.settings.REQUEST_TIMEOUT

        # 1. Ключи
        cache_key = cache_policy.key or descriptor.cache_key
        key = descriptor.cancellation_key
        cacheable = descriptor.is_read and cache_policy.enabled

        # 2. Кэш: попадание возвращаем, не трогая сеть
        if cacheable:
            cached = self.cache.get(cache_key)
            if cached is not CACHE_MISS:
                logger.debug(f"Cache hit: {cache_key}")
                return self._transform(cached, descriptor, options)
            logger.debug(f"Cache miss: {cache_key}")

        # 3. Токен отмены
        token = self.registry.register(key)

        # 4. Retry вокруг транспорта
        try:
            body = await token.run(
                self.retry_controller.execute(
                    lambda: self._attempt(descriptor, token, timeout),
                    retry_policy,
                    on_retry=options.on_retry,
                )
            )
        except RequestCancelledError:
            logger.info(f"Request aborted: {key}")
            raise
        except ClassifiedError as error:
            self._on_failure(error, descriptor, options)
            raise
        finally:
            self.registry.release(key, token)

        # 5. Успех: отмененный запрос в кэш не пишет
        if cacheable and not token.cancelled:
            self.cache.set(cache_key, body, cache_policy.ttl_ms)

        result = self._transform(body, descriptor, options)
        if options.notify_success:
            safe_notify(self.notifier, build_success_notification(options.success_message))
        return result

    async def _attempt(self, descriptor: RequestDescriptor, token: CancellationToken, timeout: Optional[float]) -> Any:
        """Одна попытка: middleware -> транспорт (с потолком timeout) -> статус."""
        request = descriptor
        for middleware in self._middlewares:
            request = await middleware.on_request(request)

        try:
            response = await asyncio.wait_for(
                self.transport.send(
                    request.method,
                    request.url,
                    params=request.params,
                    body=request.body,
                    headers=request.headers or None,
                    signal=token,
                ),
                timeout=timeout,
            )
            if not response.ok:
                raise classify_status(response.status, response.body)

            for middleware in self._middlewares:
                response = await middleware.on_response(response)
            return response.body

        except RequestCancelledError:
            raise
        except Exception as e:
            error = classify_error(e)
            for middleware in self._middlewares:
                try:
                    recovered = await middleware.on_error(error)
                except Exception as mw_error:
                    # Сбой middleware не должен подменять исходную ошибку
                    logger.warning(f"Middleware {middleware.__class__.__name__}.on_error failed: {mw_error}")
                    continue
                if recovered is not None:
                    return recovered
            if error is e:
                raise
            raise error from e

    def _on_failure(self, error: ClassifiedError, descriptor: RequestDescriptor, options: DispatchOptions) -> None:
        logger.error(
            f"{descriptor.method} {descriptor.url} failed: "
            f"kind={error.kind.value} status={error.status} message={error.message}"
        )
        if options.on_error is not None:
            try:
                options.on_error(error)
            except Exception as callback_error:
                logger.warning(f"on_error callback failed: {callback_error}")
        if not options.suppress_notify:
            safe_notify(self.notifier, build_error_notification(error))

    def _transform(self, body: Any, descriptor: RequestDescriptor, options: DispatchOptions) -> Any:
        if options.transform is None:
            return body
        try:
            return options.transform(body)
        except Exception as e:
            # Сбой transform наружу уходит только классифицированным
            error = classify_error(e)
            self._on_failure(error, descriptor, options)
            raise error from e

    # ------------------------------------------------------------------
    # Verb helpers
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[DispatchOptions] = None,
    ) -> Any:
        descriptor = RequestDescriptor(
            url=url,
            method=method,
            params=params,
            body=body,
            headers=headers or {},
        )
        return await self.dispatch(descriptor, options)

    async def get(self, url: str, *, params: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self.request("GET", url, params=params, **kwargs)

    async def post(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", url, body=body, **kwargs)

    async def put(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", url, body=body, **kwargs)

    async def patch(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", url, body=body, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)

    # ------------------------------------------------------------------
    # Batch / abort / cache management
    # ------------------------------------------------------------------

    async def dispatch_all(
        self,
        requests: Sequence[BatchItem],
        abort_on_fail: bool = False,
        suppress_notify: bool = False,
    ) -> List[Any]:
        """
        Пакетный запрос (конкурентно).
        abort_on_fail=True: первая ошибка уходит наверх.
        Иначе: упавшие слоты -> None, остальные результаты возвращаются.
        """
        coros = []
        for descriptor, options in requests:
            options = options or DispatchOptions()
            if suppress_notify:
                options = dataclasses.replace(options, suppress_notify=True)
            coros.append(self.dispatch(descriptor, options))

        if abort_on_fail:
            return list(await asyncio.gather(*coros))

        results = await asyncio.gather(*coros, return_exceptions=True)
        output: List[Any] = []
        for result in results:
            if isinstance(result, ApiBaseError):
                output.append(None)
            elif isinstance(result, BaseException):
                raise result
            else:
                output.append(result)
        return output

    def abort(self, method: str, url: str, params: Optional[Dict[str, Any]] = None) -> bool:
        return self.registry.cancel(make_request_key(method, url, params))

    def abort_all(self) -> int:
        return self.registry.cancel_all()

    def clear_cache(self, key: Optional[str] = None) -> None:
        self.cache.clear(key)
