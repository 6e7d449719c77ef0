from typing import Dict, Optional

# Базовые заголовки для JSON API.
# ВАЖНО: "Accept-Encoding" не указываем - httpx добавит и распакует сам.
BASE_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

# Для health-пробы: обходим любые промежуточные кэши
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


def get_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Базовые заголовки + заголовки конкретного запроса (последние имеют приоритет)"""
    headers = BASE_HEADERS.copy()
    if extra:
        headers.update(extra)
    return headers
