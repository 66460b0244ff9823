"""
Сервисы OCR обработки.

Модули:
    - model_loader: скачивание и кэширование моделей
    - engine: интерфейс движка OCR и адаптер rapidocr_onnxruntime
    - ocr_processor: пайплайн обработки одного запроса
"""

from png_ocr.services.engine import OCREngine, RapidOCREngine, bootstrap_engine
from png_ocr.services.model_loader import ModelLoadError, load_model
from png_ocr.services.ocr_processor import format_text_output, process_image

__all__ = [
    "OCREngine",
    "RapidOCREngine",
    "bootstrap_engine",
    "ModelLoadError",
    "load_model",
    "format_text_output",
    "process_image",
]
