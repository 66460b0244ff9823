"""
Конфигурация PNG OCR Service.

Все значения читаются из .env файла (или переменных окружения).
Дефолты повторяют фиксированные параметры сервиса: порт 8080,
все интерфейсы, модели детекции и распознавания из репозитория RapidOCR.

Единый префикс: OCR_
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

MODELS_BASE_URL = "https://huggingface.co/SWHL/RapidOCR/resolve/main/PP-OCRv4"


class Settings(BaseSettings):
    """
    Настройки OCR сервиса.

    Читает переменные с префиксом OCR_ из .env файла.
    """

    model_config = SettingsConfigDict(
        env_prefix="OCR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    host: str = "0.0.0.0"
    port: int = 8080

    # --- Модели: URL или локальный путь ---
    detection_model_url: str = f"{MODELS_BASE_URL}/ch_PP-OCRv4_det_infer.onnx"
    recognition_model_url: str = f"{MODELS_BASE_URL}/ch_PP-OCRv4_rec_infer.onnx"

    # Каталог кэша скачанных моделей
    model_cache_dir: str = "~/.cache/png-ocr/models"
    download_timeout_seconds: float = 60.0

    # --- API: лимиты ---
    max_file_size_mb: int = 20

    # --- Распознавание ---
    # Строки с уверенностью ниже порога считаются нераспознанными
    min_text_score: float = 0.5
    debug: bool = False


# Глобальный экземпляр настроек
settings = Settings()
