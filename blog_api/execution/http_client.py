import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse, urlunparse

import httpx

from blog_api.config.headers import get_headers
from blog_api.core.contracts import CancellationSignal
from blog_api.models.request import TransportResponse

logger = logging.getLogger(__name__)


def mask_url(url: str) -> str:
    """Безопасная маскировка пароля в URL (для логов)."""
    if not url:
        return ""
    try:
        parsed = urlparse(url)
        if parsed.password:
            safe_netloc = f"{parsed.username}:***@{parsed.hostname}"
            if parsed.port:
                safe_netloc += f":{parsed.port}"
            parsed = parsed._replace(netloc=safe_netloc)
        return urlunparse(parsed)
    except ValueError:
        return "Invalid-URL"


class HttpClientFactory:
    """
    Фабрика HTTP-клиентов.
    Вся конфигурация httpx (таймауты, лимиты, http2) берется из Settings.
    """

    def __init__(self, settings: Any):
        self.settings = settings

    def create(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            connect=self.settings.HTTP_TIMEOUT_CONNECT,
            read=self.settings.HTTP_TIMEOUT_READ,
            write=self.settings.HTTP_TIMEOUT_WRITE,
            pool=self.settings.HTTP_TIMEOUT_POOL,
        )

        limits = httpx.Limits(
            max_keepalive_connections=self.settings.MAX_CONNECTIONS,
            max_connections=self.settings.MAX_CONNECTIONS * 2
        )

        logger.debug(f"Creating HTTP client for {mask_url(self.settings.API_BASE_URL)}")
        return httpx.AsyncClient(
            base_url=self.settings.API_BASE_URL,
            headers=get_headers(),
            timeout=timeout,
            limits=limits,
            follow_redirects=True,
            http2=self.settings.HTTP2,
            verify=True,
        )


def _decode_body(response: httpx.Response) -> Any:
    """JSON, если он есть; иначе текст; пустое тело -> None."""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.debug(f"Response declared JSON but failed to decode: {response.request.url}")
    return response.text


class HttpxTransport:
    """
    Транспорт на базе httpx (асинхронный).
    Не бросает на не-2xx: статус классифицирует вызывающий слой.
    Бросает только когда ответа нет (httpx.RequestError).
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, factory: Optional[HttpClientFactory] = None):
        if client is None and factory is None:
            raise ValueError("HttpxTransport needs either a client or a factory")
        self._client = client
        self._factory = factory

    @property
    def client(self) -> httpx.AsyncClient:
        # Ленивое создание: клиент живет до aclose()
        if self._client is None:
            self._client = self._factory.create()
        return self._client

    async def send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> TransportResponse:
        request = self.client.build_request(
            method,
            url,
            params=params,
            json=body,
            headers=headers,
        )

        logger.debug(f"{method} {mask_url(str(request.url))}")
        if signal is None:
            response = await self.client.send(request)
        else:
            response = await signal.run(self.client.send(request))

        try:
            return TransportResponse(
                status=response.status_code,
                body=_decode_body(response),
                headers=dict(response.headers),
            )
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
