"""
PNG OCR Service — FastAPI приложение.

Принимает PNG изображение и возвращает распознанный текст,
по одной строке на строку ответа.

Эндпоинты:
    POST /process — тело запроса: байты PNG, ответ: text/plain

Модели детекции и распознавания загружаются один раз в lifespan,
до начала приёма запросов. Если модель не загрузилась — сервис не стартует.

Запуск:
    uvicorn png_ocr.main:app --host 0.0.0.0 --port 8080
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from png_ocr.config import Settings, settings
from png_ocr.services.engine import OCREngine, bootstrap_engine
from png_ocr.services.ocr_processor import OCRProcessingError, process_image

# Настройка логгера
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [PNG-OCR] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine(request: Request) -> OCREngine:
    """Движок, созданный при старте приложения."""
    return request.app.state.engine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post("/process", response_class=PlainTextResponse)
async def process(
    request: Request,
    engine: OCREngine = Depends(get_engine),
    app_settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """
    Распознаёт текст на PNG изображении.

    Тело запроса читается целиком, затем пайплайн OCR выполняется
    в threadpool — параллельные запросы используют общий движок.

    Returns:
        PlainTextResponse: 200 с текстом, 400/413/500 с коротким сообщением
    """
    body = await request.body()

    max_size = app_settings.max_file_size_mb * 1024 * 1024
    if len(body) > max_size:
        logger.warning(f"Слишком большое тело запроса: {len(body)} байт")
        return PlainTextResponse(
            f"Image too large: maximum {app_settings.max_file_size_mb} MB",
            status_code=413,
        )

    try:
        text = await run_in_threadpool(process_image, engine, body)
    except OCRProcessingError as e:
        if e.status_code >= 500:
            logger.exception(f"{e.message}: {e.detail}")
        else:
            logger.warning(f"{e.message}: {e.detail}")
        return PlainTextResponse(e.message, status_code=e.status_code)
    except Exception as e:
        logger.exception(f"Ошибка обработки изображения: {e}")
        return PlainTextResponse("Internal server error", status_code=500)

    return PlainTextResponse(text)


def create_app(
    engine: Optional[OCREngine] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        engine: готовый движок (если None — загружается при старте)
        app_settings: настройки (по умолчанию глобальные)

    Returns:
        FastAPI: приложение с единственным маршрутом POST /process
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Блокирующая загрузка: запросы не принимаются, пока движок не готов
        app.state.engine = engine if engine is not None else bootstrap_engine(app_settings)
        app.state.settings = app_settings
        logger.info(f"Starting server at http://localhost:{app_settings.port}")
        yield

    app = FastAPI(
        title="PNG OCR Service",
        description="Распознавание текста на PNG изображениях",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )
