"""
Процессор OCR — обработка одного запроса.

Пайплайн в один проход:
    decode PNG -> prepare_input -> detect_words -> find_text_lines
    -> recognize_text -> сборка текста

Ошибки каждого этапа поднимаются как OCRProcessingError с HTTP статусом,
процесс при этом продолжает обслуживать остальные запросы.
"""

import io
import logging
import time
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from png_ocr.schemas import TextLine
from png_ocr.services.engine import OCREngine

logger = logging.getLogger(__name__)


class OCRProcessingError(Exception):
    """
    Ошибка этапа обработки запроса.

    Attributes:
        status_code: HTTP статус ответа
        message: короткое сообщение для клиента
    """

    status_code = 500
    message = "Internal server error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)
        self.detail = detail


class ImageDecodeError(OCRProcessingError):
    status_code = 400
    message = "Failed to load image"


class InputPreparationError(OCRProcessingError):
    status_code = 500
    message = "Failed to prepare input"


class WordDetectionError(OCRProcessingError):
    status_code = 400
    message = "Failed to detect words"


class RecognitionError(OCRProcessingError):
    status_code = 500
    message = "Failed to recognize text"


def decode_png(data: bytes) -> np.ndarray:
    """
    Декодирует байты как PNG в массив H x W x 3 (RGB, uint8).

    Другие форматы не принимаются, даже если Pillow умеет их читать.

    Args:
        data: тело запроса

    Returns:
        np.ndarray: изображение H x W x 3

    Raises:
        ImageDecodeError: если данные не являются валидным PNG
    """
    try:
        with Image.open(io.BytesIO(data), formats=["PNG"]) as img:
            img.load()
            if img.mode.startswith("I"):
                # 16-битный grayscale: 0..65535 -> 0..255
                return _scale_16bit_to_rgb(np.asarray(img))
            rgb = img.convert("RGB")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
    ) as e:
        raise ImageDecodeError(str(e)) from e

    return np.asarray(rgb, dtype=np.uint8)


def _scale_16bit_to_rgb(samples: np.ndarray) -> np.ndarray:
    """
    Переводит 16-битные отсчёты в 8 бит (деление на 257 с округлением)
    и размножает канал до H x W x 3.
    """
    wide = np.clip(samples.astype(np.int64), 0, 65535)
    gray = ((wide + 128) // 257).astype(np.uint8)
    return np.ascontiguousarray(np.stack([gray, gray, gray], axis=-1))


def format_text_output(text_lines: list[Optional[TextLine]]) -> str:
    """
    Собирает текст ответа из результатов распознавания.

    Пропущенные строки (None) не дают пустых строк и лишних разделителей,
    порядок строк сохраняется как вернул движок.

    Args:
        text_lines: результаты распознавания по строкам

    Returns:
        str: строки, разделённые "\\n" (пустая строка, если ничего нет)
    """
    return "\n".join(str(line) for line in text_lines if line is not None)


def process_image(engine: OCREngine, data: bytes) -> str:
    """
    Выполняет полный пайплайн OCR для одного PNG.

    Args:
        engine: движок OCR (общий для всех запросов, только чтение)
        data: байты PNG изображения

    Returns:
        str: распознанный текст

    Raises:
        ImageDecodeError: тело запроса не PNG (400)
        InputPreparationError: движок не принял изображение (500)
        WordDetectionError: ошибка детекции слов (400)
        RecognitionError: ошибка распознавания (500)
    """
    total_start = time.perf_counter()

    # 1. Decode
    image = decode_png(data)
    height, width = image.shape[:2]

    # 2. Подготовка входа
    try:
        ocr_input = engine.prepare_input(image)
    except Exception as e:
        raise InputPreparationError(str(e)) from e

    # 3. Детекция слов
    detect_start = time.perf_counter()
    try:
        words = engine.detect_words(ocr_input)
    except Exception as e:
        raise WordDetectionError(str(e)) from e
    detect_duration = int((time.perf_counter() - detect_start) * 1000)

    # 4. Группировка в строки
    lines = engine.find_text_lines(ocr_input, words)

    # 5. Распознавание
    rec_start = time.perf_counter()
    try:
        text_lines = engine.recognize_text(ocr_input, lines)
    except Exception as e:
        raise RecognitionError(str(e)) from e
    rec_duration = int((time.perf_counter() - rec_start) * 1000)

    # 6. Сборка ответа
    output = format_text_output(text_lines)

    recognized = sum(1 for line in text_lines if line is not None)
    total_duration = int((time.perf_counter() - total_start) * 1000)
    logger.info(
        f"OCR {width}x{height}: слов {len(words)}, строк {recognized}/{len(lines)}, "
        f"детекция {detect_duration}ms, распознавание {rec_duration}ms, "
        f"всего {total_duration}ms"
    )

    return output
