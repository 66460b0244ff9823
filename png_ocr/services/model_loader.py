"""
Загрузчик моделей OCR.

Получает файл модели по URL или локальному пути:
    - URL: скачивается через httpx в кэш-каталог, при повторном старте
      берётся из кэша без обращения к сети
    - Путь: проверяется наличие и непустой размер файла

Загрузка синхронная и выполняется только при старте сервиса.
"""

import hashlib
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from png_ocr.schemas import ModelHandle, ModelSource

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ModelLoadError(Exception):
    """Модель не удалось скачать, найти или разобрать."""


def load_model(
    source: ModelSource,
    cache_dir: Path,
    name: str,
    client: Optional[httpx.Client] = None,
    timeout_seconds: float = 60.0,
) -> ModelHandle:
    """
    Загружает модель из источника.

    Args:
        source: URL или локальный путь модели
        cache_dir: каталог для кэша скачанных моделей
        name: роль модели для логов ("detection", "recognition")
        client: httpx клиент (если не передан — создаётся временный)
        timeout_seconds: таймаут скачивания

    Returns:
        ModelHandle: дескриптор модели с локальным путём

    Raises:
        ModelLoadError: при ошибке сети, отсутствии или пустом файле
    """
    if source.is_url:
        path = _fetch_cached(source.location, Path(cache_dir).expanduser(), client, timeout_seconds)
    else:
        path = Path(source.location)

    if not path.is_file():
        raise ModelLoadError(f"Файл модели {name} не найден: {path}")

    size_bytes = path.stat().st_size
    if size_bytes == 0:
        raise ModelLoadError(f"Файл модели {name} пустой: {path}")

    logger.info(f"Модель {name}: {path} ({size_bytes / (1024 * 1024):.1f} MB)")

    return ModelHandle(name=name, source=source, path=path, size_bytes=size_bytes)


def cache_path_for(url: str, cache_dir: Path) -> Path:
    """
    Путь к файлу модели в кэше.

    Имя файла — последний сегмент URL с префиксом из хэша полного URL,
    чтобы одинаковые имена с разных адресов не пересекались.
    """
    filename = os.path.basename(urlparse(url).path) or "model"
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]
    return cache_dir / f"{digest}-{filename}"


def _fetch_cached(
    url: str,
    cache_dir: Path,
    client: Optional[httpx.Client],
    timeout_seconds: float,
) -> Path:
    """Возвращает файл из кэша или скачивает его."""
    path = cache_path_for(url, cache_dir)

    if path.is_file() and path.stat().st_size > 0:
        logger.info(f"Модель из кэша: {path}")
        return path

    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ModelLoadError(f"Не удалось создать каталог кэша моделей {cache_dir}: {e}") from e

    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=httpx.Timeout(timeout_seconds), follow_redirects=True)

    try:
        _download(client, url, path)
    except httpx.HTTPError as e:
        raise ModelLoadError(f"Не удалось скачать модель {url}: {e}") from e
    except OSError as e:
        raise ModelLoadError(f"Не удалось сохранить модель {url} в {path}: {e}") from e
    finally:
        if owns_client:
            client.close()

    return path


def _download(client: httpx.Client, url: str, path: Path) -> None:
    """
    Скачивает файл во временный файл рядом с целевым и переименовывает.

    Недокачанный файл никогда не оказывается по пути кэша.
    """
    start = time.perf_counter()
    logger.info(f"Скачивание модели: {url}")

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".download-")
    try:
        written = 0
        with os.fdopen(fd, "wb") as f:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)

        if written == 0:
            raise ModelLoadError(f"Сервер вернул пустой файл модели: {url}")

        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    duration = int((time.perf_counter() - start) * 1000)
    logger.info(f"Модель скачана: {written} байт за {duration}ms")
