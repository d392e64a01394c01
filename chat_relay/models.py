"""Pydantic модели для Chat Relay."""
from typing import Any, Literal, Optional

from pydantic import BaseModel


class Message(BaseModel):
    """Сообщение для completion endpoint."""
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionResult(BaseModel):
    """Результат вызова completion endpoint."""
    text: str
    elapsed_ms: int
    tokens_used: int = 0


class ChatResponse(BaseModel):
    """Успешный ответ клиенту."""
    response: str


class ErrorResponse(BaseModel):
    """Ошибка при обращении к completion endpoint."""
    message: str
    details: Optional[Any] = None
