"""Chat Relay API.

Эндпоинты:
- GET  /          — статическая страница
- GET  /health    — простая проверка
- POST /api/chat  — принимает query и (опционально) file, отвечает текстом модели

Файл конвертируется в текст (CSV, TXT, JSON, XLSX), добавляется к запросу
и уходит одним запросом в OpenAI completion endpoint.
"""
import logging
import sys
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

from .config import config
from .models import ChatResponse, ErrorResponse
from .normalizer import FileParseError, UnsupportedFileTypeError, normalize_upload
from .services import (
    CompletionAPIError,
    CompletionNetworkError,
    CompletionService,
    build_messages,
    format_answer,
    get_completion_service,
)


def _log_handlers() -> List[logging.Handler]:
    """Консоль + файл logs/app_YYYY-MM-DD.log"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    
    if config.LOG_TO_FILE:
        log_dir = Path(config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"app_{date.today().isoformat()}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    
    return handlers


# Настройка логирования
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=_log_handlers(),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle: startup и shutdown."""
    problem = config.startup_error()
    if problem:
        logger.error(problem)
        raise RuntimeError(problem)
    
    logger.info("Chat Relay запущен")
    logger.info(f"Completion endpoint: {config.OPENAI_API_URL}")
    logger.info(f"Model: {config.MODEL_NAME}")
    logger.info(f"Upload dir: {config.UPLOAD_DIR}")
    yield
    logger.info("Chat Relay остановлен")


app = FastAPI(
    title="Chat Relay",
    description="Запрос пользователя + файл -> OpenAI chat completion",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def index():
    """Статическая страница с формой."""
    return FileResponse(Path(config.STATIC_DIR) / "index.html")


@app.get("/health")
async def health():
    """Health check."""
    return {"status": "ok", "service": "chat_relay"}


@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    query: str = Form(default="", description="Текст запроса"),
    file: Optional[UploadFile] = File(default=None, description="CSV, TXT, JSON или XLSX"),
    completion: CompletionService = Depends(get_completion_service),
):
    """
    Ответ модели на запрос пользователя.
    
    - Без файла: в модель уходит одно сообщение с query
    - С файлом: файл конвертируется в текст и уходит вторым сообщением
    - Неподдерживаемый тип файла -> 400, модель не вызывается
    """
    logger.info(f"Received query: {query}")
    
    file_content = None
    
    # Пустое поле file из HTML-формы приходит с пустым filename
    if file is not None and file.filename:
        logger.info(f"Received file: {file.filename}, type: {file.content_type}")
        
        try:
            file_content = await normalize_upload(file, config.UPLOAD_DIR)
        except UnsupportedFileTypeError as e:
            logger.warning(f"Rejected file {file.filename}: unsupported type {e.mime_type}")
            return PlainTextResponse(str(e), status_code=400)
        except FileParseError as e:
            logger.error(f"Error processing file {file.filename}: {e}", exc_info=True)
            return PlainTextResponse("Error processing file", status_code=500)
    
    elif not query.strip():
        return PlainTextResponse("Please provide a query or upload a file.", status_code=400)
    
    try:
        result = await completion.complete(build_messages(query, file_content))
    
    except CompletionAPIError as e:
        return _error(ErrorResponse(message="Error fetching response from OpenAI", details=e.details))
    
    except CompletionNetworkError:
        return _error(ErrorResponse(message="Network error: No response received from OpenAI"))
    
    except Exception as e:
        logger.error(f"Request error: {e}", exc_info=True)
        return _error(ErrorResponse(message="Error processing request", details=str(e)))
    
    return ChatResponse(response=format_answer(result, config.INCLUDE_USAGE_FOOTER))


def _error(body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


def run():
    """Запуск сервиса."""
    problem = config.startup_error()
    if problem:
        logger.error(f"Error: {problem}")
        sys.exit(1)
    
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
