"""
Общие заготовки для тестов: генерация PNG, фейковый движок OCR
и заглушка rapidocr_onnxruntime.RapidOCR.
"""

import io
import types
from typing import Optional

import numpy as np
from PIL import Image

from png_ocr.schemas import OCRInput, Rect, TextLine, TextLineRegion, WordRegion
from png_ocr.services.engine import OCREngine


def make_png(color=(255, 255, 255), size=(40, 20), mode: str = "RGB") -> bytes:
    """PNG заданного цвета и размера (width, height)."""
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(color=(255, 255, 255), size=(40, 20)) -> bytes:
    img = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    return buffer.getvalue()


def text_line(text: str, score: float = 0.9) -> TextLine:
    return TextLine(text=text, score=score, rect=Rect(0, 0, 10, 10))


class FakeEngine(OCREngine):
    """
    Движок без моделей.

    Возвращает заранее заданные строки. by_color позволяет выбрать
    результат по цвету пикселя (0, 0) — для проверки параллельных запросов.
    fail_at — имя этапа, на котором бросается RuntimeError.
    """

    def __init__(
        self,
        lines: Optional[list] = None,
        by_color: Optional[dict] = None,
        fail_at: Optional[str] = None,
    ):
        self.lines = lines or []
        self.by_color = by_color or {}
        self.fail_at = fail_at
        self.calls: list[str] = []

    def _stage(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_at == name:
            raise RuntimeError(f"{name} failed")

    def _lines_for(self, ocr_input: OCRInput) -> list:
        color = tuple(int(c) for c in ocr_input.image[0, 0])
        return self.by_color.get(color, self.lines)

    def prepare_input(self, image: np.ndarray) -> OCRInput:
        self._stage("prepare_input")
        return OCRInput(image=image)

    def detect_words(self, ocr_input: OCRInput) -> list[WordRegion]:
        self._stage("detect_words")
        return [
            WordRegion(rect=Rect(0, i * 10, 10, i * 10 + 8))
            for i, _ in enumerate(self._lines_for(ocr_input))
        ]

    def find_text_lines(self, ocr_input, words):
        self._stage("find_text_lines")
        return [TextLineRegion(rect=w.rect, words=[w]) for w in words]

    def recognize_text(self, ocr_input, lines):
        self._stage("recognize_text")
        return list(self._lines_for(ocr_input))[: len(lines)]


class StubRapidOCR:
    """
    Заглушка RapidOCR: стадии text_det и text_rec без ONNX моделей.

    Args:
        boxes: четырёхугольники (N x 4 x 2), которые вернёт text_det
        rec: пары (text, score), которые вернёт text_rec
    """

    def __init__(self, boxes=None, rec=None, **kwargs):
        self.kwargs = kwargs
        self.boxes = boxes
        self.rec = rec or []
        self.rec_inputs = None

    def text_det(self, img):
        return self.boxes, 0.01

    def text_rec(self, img_list):
        self.rec_inputs = img_list
        return self.rec[: len(img_list)], 0.01


def fake_rapidocr_module(factory) -> types.ModuleType:
    """Модуль с атрибутом RapidOCR для подмены в sys.modules."""
    module = types.ModuleType("rapidocr_onnxruntime")
    module.RapidOCR = factory
    return module
