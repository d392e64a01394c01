"""Сервисы для работы с OpenAI completion endpoint."""
import logging
import time
from typing import Any, List, Optional

import httpx

from .config import Settings, config
from .models import CompletionResult, Message

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "Please summarize the file content."
FALLBACK_ANSWER = "No response from AI"


class CompletionError(Exception):
    """Базовая ошибка вызова completion endpoint."""


class CompletionAPIError(CompletionError):
    """Провайдер ответил ошибкой (non-2xx)."""
    
    def __init__(self, status_code: int, details: Any):
        super().__init__(f"OpenAI returned {status_code}")
        self.status_code = status_code
        self.details = details


class CompletionNetworkError(CompletionError):
    """Ответ от провайдера не получен (сеть, таймаут)."""


def build_messages(query: Optional[str], file_content: Optional[str]) -> List[Message]:
    """
    Сформировать messages для completion endpoint.
    
    Первое сообщение - запрос пользователя (или запрос по умолчанию),
    второе (опционально) - содержимое файла.
    """
    messages = [Message(role="user", content=query or DEFAULT_QUERY)]
    
    if file_content:
        messages.append(Message(role="user", content=f"File content: {file_content}"))
    
    return messages


def format_answer(result: CompletionResult, include_usage: bool) -> str:
    """Добавить футер со временем ответа и количеством токенов."""
    if not include_usage:
        return result.text
    return (
        f"{result.text}\n\n---\n"
        f"Response time: {result.elapsed_ms} ms | Tokens used: {result.tokens_used}"
    )


def _error_details(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _extract_text(data: dict) -> str:
    choices = data.get("choices") or []
    if not choices:
        return FALLBACK_ANSWER
    message = choices[0].get("message") or {}
    return message.get("content") or FALLBACK_ANSWER


class CompletionService:
    """Клиент OpenAI-compatible /v1/chat/completions."""
    
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport
    
    async def complete(self, messages: List[Message]) -> CompletionResult:
        """
        Один запрос к completion endpoint без стриминга и без ретраев.
        
        Raises:
            CompletionAPIError: провайдер вернул ошибку
            CompletionNetworkError: ответ не получен
        """
        payload = {
            "model": self.settings.MODEL_NAME,
            "messages": [msg.model_dump() for msg in messages],
        }
        
        headers = {
            "Authorization": f"Bearer {self.settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        
        start = time.perf_counter()
        
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.TIMEOUT_CHAT,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.settings.OPENAI_API_URL,
                    json=payload,
                    headers=headers
                )
        except httpx.RequestError as e:
            logger.error(f"Network error: no response received from OpenAI ({e!r})")
            raise CompletionNetworkError(str(e)) from e
        
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        
        if response.is_error:
            details = _error_details(response)
            logger.error(f"OpenAI API error {response.status_code}: {details}")
            raise CompletionAPIError(response.status_code, details)
        
        data = response.json()
        text = _extract_text(data)
        tokens_used = (data.get("usage") or {}).get("total_tokens") or 0
        
        logger.info(f"AI response: {text}")
        logger.info(f"Response time: {elapsed_ms} ms, Tokens used: {tokens_used}")
        
        return CompletionResult(text=text, elapsed_ms=elapsed_ms, tokens_used=tokens_used)


completion_service = CompletionService(config)


def get_completion_service() -> CompletionService:
    return completion_service
