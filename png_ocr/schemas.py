"""
Схемы данных PNG OCR Service.

Включает:
    - Источник и дескриптор загруженной модели
    - Геометрию слов и строк, найденных детектором
    - Результат распознавания строки
    - Подготовленный для движка вход
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np


# =============================================================================
# Модели
# =============================================================================


@dataclass(frozen=True)
class ModelSource:
    """
    Откуда брать модель.

    Attributes:
        location: URL или путь к файлу
        kind: "url" или "path"
    """

    location: str
    kind: str

    @classmethod
    def parse(cls, location: str) -> "ModelSource":
        """Определяет тип источника по схеме: http(s) — URL, иначе путь."""
        if location.startswith(("http://", "https://")):
            return cls(location=location, kind="url")
        return cls(location=str(Path(location).expanduser()), kind="path")

    @property
    def is_url(self) -> bool:
        return self.kind == "url"


@dataclass(frozen=True)
class ModelHandle:
    """
    Загруженная модель, готовая к передаче в движок.

    Создаётся один раз при старте и больше не меняется.

    Attributes:
        name: роль модели ("detection" или "recognition")
        source: источник, из которого модель получена
        path: локальный файл модели (кэш или исходный путь)
        size_bytes: размер файла
    """

    name: str
    source: ModelSource
    path: Path
    size_bytes: int


# =============================================================================
# Геометрия и результаты
# =============================================================================


@dataclass(frozen=True)
class Rect:
    """Прямоугольник в пикселях: {left, top, right, bottom}."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def union(self, other: "Rect") -> "Rect":
        return Rect(
            left=min(self.left, other.left),
            top=min(self.top, other.top),
            right=max(self.right, other.right),
            bottom=max(self.bottom, other.bottom),
        )


@dataclass(frozen=True)
class WordRegion:
    """
    Кандидат слова от детектора.

    Attributes:
        rect: охватывающий прямоугольник
    """

    rect: Rect


@dataclass
class TextLineRegion:
    """
    Строка — слова, сгруппированные по горизонтали.

    Attributes:
        rect: прямоугольник, охватывающий все слова строки
        words: слова слева направо
    """

    rect: Rect
    words: list[WordRegion] = field(default_factory=list)


@dataclass(frozen=True)
class TextLine:
    """
    Распознанная строка текста.

    Attributes:
        text: распознанный текст
        score: уверенность распознавания (0-1)
        rect: геометрия строки на изображении
    """

    text: str
    score: float
    rect: Optional[Rect] = None

    def __str__(self) -> str:
        return self.text


@dataclass
class OCRInput:
    """Изображение в раскладке движка (H x W x 3, uint8)."""

    image: np.ndarray

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def width(self) -> int:
        return int(self.image.shape[1])
