import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Union

from blog_api.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_NAMESPACE_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileStore:
    """
    Персистентное key-value хранилище на файлах JSON (аналог localStorage).
    Один namespace = один файл <namespace>.json.
    Обеспечивает:
    - Атомарную запись (tmp -> flush -> fsync -> os.replace).
    - Устойчивость к сбоям: битый файл читается как "значения нет".
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        # Гарантируем, что папка существует
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, namespace: str) -> Path:
        if not _NAMESPACE_RE.match(namespace):
            raise ValueError(f"Invalid storage namespace: {namespace!r}")
        return self.directory / f"{namespace}.json"

    def read(self, namespace: str) -> Any:
        path = self._path(namespace)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError:
            # Нормально при внезапном выключении на прошлой записи (до перехода на os.replace)
            logger.warning(f"Corrupted JSON in {path}. Treating namespace '{namespace}' as empty.")
            return None

    def write(self, namespace: str, data: Any) -> None:
        path = self._path(namespace)
        json_str = json.dumps(data, ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{namespace}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json_str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to persist namespace '{namespace}': {e}") from e

    def remove(self, namespace: str) -> None:
        self._path(namespace).unlink(missing_ok=True)
