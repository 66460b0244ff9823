"""
Движок OCR — обёртка над внешней библиотекой инференса.

Сервис не реализует детекцию и распознавание сам: модели и их
пред/постобработка живут в rapidocr_onnxruntime. Здесь только:
    - интерфейс OCREngine из четырёх операций пайплайна
    - адаптер RapidOCREngine поверх стадий text_det / text_rec
    - сборка движка из двух загруженных моделей при старте
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx
import numpy as np

from png_ocr.config import Settings
from png_ocr.schemas import (
    ModelHandle,
    ModelSource,
    OCRInput,
    Rect,
    TextLine,
    TextLineRegion,
    WordRegion,
)
from png_ocr.services.model_loader import ModelLoadError, load_model

logger = logging.getLogger(__name__)

# Минимальное вертикальное перекрытие (доля меньшей высоты) для одной строки
LINE_OVERLAP_RATIO = 0.5
# Максимальный горизонтальный разрыв между словами строки (в высотах строки)
LINE_MAX_GAP_RATIO = 3.0


class OCREngine(ABC):
    """
    Интерфейс движка OCR.

    Методы вызываются одновременно из разных запросов. Реализация сама
    сериализует стадии, которые хранят состояние между вызовами.
    """

    @abstractmethod
    def prepare_input(self, image: np.ndarray) -> OCRInput:
        """Приводит RGB изображение (H x W x 3, uint8) к формату движка."""

    @abstractmethod
    def detect_words(self, ocr_input: OCRInput) -> list[WordRegion]:
        """Находит кандидатов слов на изображении."""

    @abstractmethod
    def find_text_lines(
        self, ocr_input: OCRInput, words: list[WordRegion]
    ) -> list[TextLineRegion]:
        """Группирует слова в строки. Не падает, пустой список допустим."""

    @abstractmethod
    def recognize_text(
        self, ocr_input: OCRInput, lines: list[TextLineRegion]
    ) -> list[Optional[TextLine]]:
        """Распознаёт текст каждой строки; None — строка не распознана."""


class RapidOCREngine(OCREngine):
    """
    Адаптер над rapidocr_onnxruntime.RapidOCR.

    Args:
        rapid: экземпляр RapidOCR (или объект с атрибутами text_det, text_rec)
        min_text_score: порог уверенности распознавания строки
    """

    def __init__(self, rapid, min_text_score: float = 0.5):
        self._rapid = rapid
        self.min_text_score = min_text_score
        # TextDetector пересобирает препроцессинг под размер каждого изображения
        self._det_lock = threading.Lock()

    def prepare_input(self, image: np.ndarray) -> OCRInput:
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"Ожидается изображение H x W x 3, получено: {image.shape}")
        if image.dtype != np.uint8:
            raise ValueError(f"Ожидается uint8, получено: {image.dtype}")
        if image.shape[0] == 0 or image.shape[1] == 0:
            raise ValueError("Изображение нулевого размера")

        # RapidOCR работает с BGR (соглашение OpenCV)
        bgr = np.ascontiguousarray(image[:, :, ::-1])
        return OCRInput(image=bgr)

    def detect_words(self, ocr_input: OCRInput) -> list[WordRegion]:
        with self._det_lock:
            boxes, _ = self._rapid.text_det(ocr_input.image)

        if boxes is None or len(boxes) == 0:
            return []

        words = []
        for box in boxes:
            rect = _box_to_rect(np.asarray(box), ocr_input.width, ocr_input.height)
            if rect.width > 0 and rect.height > 0:
                words.append(WordRegion(rect=rect))
        return words

    def find_text_lines(
        self, ocr_input: OCRInput, words: list[WordRegion]
    ) -> list[TextLineRegion]:
        return group_words_into_lines(words)

    def recognize_text(
        self, ocr_input: OCRInput, lines: list[TextLineRegion]
    ) -> list[Optional[TextLine]]:
        results: list[Optional[TextLine]] = [None] * len(lines)

        crops = []
        crop_indices = []
        for i, line in enumerate(lines):
            r = line.rect
            crop = ocr_input.image[r.top:r.bottom, r.left:r.right]
            if crop.size == 0:
                continue
            crops.append(crop)
            crop_indices.append(i)

        if not crops:
            return results

        rec_res, _ = self._rapid.text_rec(crops)

        for i, rec in zip(crop_indices, rec_res):
            text, score = rec[0], float(rec[1])
            text = text.strip()
            if not text or score < self.min_text_score:
                continue
            results[i] = TextLine(text=text, score=score, rect=lines[i].rect)

        return results


def group_words_into_lines(words: list[WordRegion]) -> list[TextLineRegion]:
    """
    Группирует слова в строки по вертикальному перекрытию.

    Алгоритм:
        - Слова обходятся сверху вниз, слева направо
        - Слово попадает в первую строку, с которой перекрывается
          по вертикали не менее чем на LINE_OVERLAP_RATIO меньшей высоты
          и отстоит по горизонтали не дальше LINE_MAX_GAP_RATIO высот
        - Иначе начинает новую строку

    Args:
        words: кандидаты слов от детектора

    Returns:
        list[TextLineRegion]: строки сверху вниз, слова в строке слева направо
    """
    lines: list[TextLineRegion] = []

    for word in sorted(words, key=lambda w: (w.rect.top, w.rect.left)):
        target = next((line for line in lines if _same_line(line.rect, word.rect)), None)
        if target is None:
            lines.append(TextLineRegion(rect=word.rect, words=[word]))
        else:
            target.words.append(word)
            target.rect = target.rect.union(word.rect)

    for line in lines:
        line.words.sort(key=lambda w: w.rect.left)

    lines.sort(key=lambda line: (line.rect.top, line.rect.left))
    return lines


def _same_line(line: Rect, word: Rect) -> bool:
    overlap = min(line.bottom, word.bottom) - max(line.top, word.top)
    min_height = min(line.height, word.height)
    if min_height <= 0 or overlap < LINE_OVERLAP_RATIO * min_height:
        return False

    gap = max(0, word.left - line.right, line.left - word.right)
    return gap <= LINE_MAX_GAP_RATIO * max(line.height, word.height)


def _box_to_rect(box: np.ndarray, width: int, height: int) -> Rect:
    """Четырёхугольник детектора (4 x 2) -> охватывающий Rect в границах изображения."""
    xs = box[:, 0]
    ys = box[:, 1]
    return Rect(
        left=int(max(0, np.floor(xs.min()))),
        top=int(max(0, np.floor(ys.min()))),
        right=int(min(width, np.ceil(xs.max()))),
        bottom=int(min(height, np.ceil(ys.max()))),
    )


def create_engine(
    detection: ModelHandle,
    recognition: ModelHandle,
    settings: Settings,
) -> RapidOCREngine:
    """
    Создаёт движок из двух моделей.

    Raises:
        ModelLoadError: если библиотека не смогла разобрать файлы моделей
    """
    from rapidocr_onnxruntime import RapidOCR

    try:
        rapid = RapidOCR(
            det_model_path=str(detection.path),
            rec_model_path=str(recognition.path),
            print_verbose=settings.debug,
        )
    except Exception as e:
        raise ModelLoadError(f"Не удалось инициализировать движок OCR: {e}") from e

    return RapidOCREngine(rapid, min_text_score=settings.min_text_score)


def bootstrap_engine(
    settings: Settings,
    client: Optional[httpx.Client] = None,
) -> OCREngine:
    """
    Фаза старта: загружает обе модели и собирает движок.

    Вызывается один раз до начала приёма запросов.

    Args:
        settings: настройки сервиса
        client: httpx клиент для скачивания (для тестов)

    Returns:
        OCREngine: готовый к работе движок

    Raises:
        ModelLoadError: если любая из моделей не загрузилась
    """
    start = time.perf_counter()
    logger.info("Loading model...")

    cache_dir = Path(settings.model_cache_dir).expanduser()

    detection = load_model(
        ModelSource.parse(settings.detection_model_url),
        cache_dir,
        name="detection",
        client=client,
        timeout_seconds=settings.download_timeout_seconds,
    )
    recognition = load_model(
        ModelSource.parse(settings.recognition_model_url),
        cache_dir,
        name="recognition",
        client=client,
        timeout_seconds=settings.download_timeout_seconds,
    )

    engine = create_engine(detection, recognition, settings)

    duration = int((time.perf_counter() - start) * 1000)
    logger.info(f"Движок OCR готов за {duration}ms")

    return engine
