from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from blog_api.config.settings import Settings


def load_app_config(path: str = "config/app.yaml") -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p.resolve()}")

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Config must be a YAML mapping (top-level dict).")

    # В YAML ключи пишем как удобно (api_base_url), в Settings они UPPER_CASE
    return {str(key).upper(): value for key, value in data.items()}


def build_settings(path: Optional[str] = None) -> Settings:
    """Settings из env/.env, поверх - значения из YAML (если файл передан)."""
    if path is None:
        return Settings()
    return Settings(**load_app_config(path))
