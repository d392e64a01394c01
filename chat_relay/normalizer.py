"""Нормализация загруженных файлов в текст для промпта.

Поддерживаемые типы: CSV, TXT, JSON, XLSX. Любой другой MIME type
отклоняется с UnsupportedFileTypeError.
"""
import csv
import io
import json
import logging
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from openpyxl import load_workbook

logger = logging.getLogger(__name__)

SPREADSHEET_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
UNSUPPORTED_MESSAGE = "Unsupported file type. Please upload a CSV, TXT, JSON, or XLSX file."


class NormalizerError(Exception):
    """Базовая ошибка нормализации файла."""


class UnsupportedFileTypeError(NormalizerError):
    """MIME type не входит в список поддерживаемых."""
    
    def __init__(self, mime_type: Optional[str]):
        super().__init__(UNSUPPORTED_MESSAGE)
        self.mime_type = mime_type


class FileParseError(NormalizerError):
    """Файл поддерживаемого типа, но прочитать его не удалось."""


class FileKind(str, Enum):
    """Поддерживаемые форматы файлов (значение = MIME type)."""
    CSV = "text/csv"
    PLAIN_TEXT = "text/plain"
    JSON = "application/json"
    SPREADSHEET = SPREADSHEET_MIME
    
    @classmethod
    def from_mime(cls, mime_type: Optional[str]) -> "FileKind":
        """Определить формат по MIME type (параметры вроде charset игнорируются)."""
        base_type = (mime_type or "").split(";", 1)[0].strip().lower()
        try:
            return cls(base_type)
        except ValueError:
            raise UnsupportedFileTypeError(mime_type) from None


ACCEPTED_MIME_TYPES: List[str] = [kind.value for kind in FileKind]


def _json_default(value: Any) -> str:
    # openpyxl отдаёт datetime/date/time для ячеек с датами
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=_json_default)


def _csv_to_json(data: bytes) -> str:
    """CSV с заголовком -> JSON-массив объектов."""
    text = data.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(text, newline=""))
    return _dumps(list(reader))


def _plain_text(data: bytes) -> str:
    return data.decode("utf-8")


def _json_to_json(data: bytes) -> str:
    return _dumps(json.loads(data))


def _spreadsheet_to_json(data: bytes) -> str:
    """
    Первый лист XLSX -> JSON-массив строк.
    
    Полностью пустые строки пропускаются.
    """
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = [
            list(row)
            for row in sheet.iter_rows(values_only=True)
            if any(cell is not None for cell in row)
        ]
    finally:
        workbook.close()
    return _dumps(rows)


def normalize(data: bytes, mime_type: Optional[str]) -> str:
    """
    Преобразовать содержимое файла в текст.
    
    Raises:
        UnsupportedFileTypeError: MIME type не поддерживается
        FileParseError: содержимое не удалось разобрать
    """
    kind = FileKind.from_mime(mime_type)
    
    match kind:
        case FileKind.CSV:
            convert = _csv_to_json
        case FileKind.PLAIN_TEXT:
            convert = _plain_text
        case FileKind.JSON:
            convert = _json_to_json
        case FileKind.SPREADSHEET:
            convert = _spreadsheet_to_json
    
    try:
        return convert(data)
    except Exception as e:
        raise FileParseError(f"Failed to parse {kind.name} content: {e}") from e


@asynccontextmanager
async def staged_upload(upload: UploadFile, upload_dir: str) -> AsyncIterator[Path]:
    """
    Сохранить загруженный файл во временный файл в upload_dir.
    
    Временный файл удаляется при выходе из контекста на любом пути
    (успех, ошибка разбора, исключение).
    """
    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    
    fd, name = tempfile.mkstemp(dir=directory, suffix=Path(upload.filename or "").suffix)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as handle:
            await upload.seek(0)
            await run_in_threadpool(shutil.copyfileobj, upload.file, handle)
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error deleting staged upload {path}: {e}")


async def normalize_upload(upload: UploadFile, upload_dir: str) -> str:
    """
    Нормализовать загруженный файл.
    
    Тип проверяется до сохранения на диск, поэтому неподдерживаемый
    файл вообще не попадает в upload_dir.
    """
    FileKind.from_mime(upload.content_type)
    
    async with staged_upload(upload, upload_dir) as path:
        data = await run_in_threadpool(path.read_bytes)
        logger.info(f"Staged {upload.filename}: {len(data)} bytes")
        return await run_in_threadpool(normalize, data, upload.content_type)
