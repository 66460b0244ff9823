"""
PNG OCR Service — HTTP сервис распознавания текста на PNG изображениях.

    - FastAPI эндпоинт POST /process (PNG -> text/plain)
    - Модели детекции и распознавания загружаются один раз при старте
    - Инференс выполняет rapidocr_onnxruntime
"""

from png_ocr.config import settings
from png_ocr.schemas import ModelHandle, ModelSource, TextLine

__all__ = [
    "settings",
    "ModelHandle",
    "ModelSource",
    "TextLine",
]
