"""Конфигурация Chat Relay."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Настройки приложения из .env"""
    
    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_API_URL: str = "https://api.openai.com/v1/chat/completions"
    MODEL_NAME: str = "gpt-3.5-turbo"
    
    # Timeouts
    TIMEOUT_CHAT: float = 180.0
    
    # Футер "Response time | Tokens used" в ответе
    INCLUDE_USAGE_FOOTER: bool = True
    
    # Service
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    LOG_LEVEL: str = "INFO"
    
    # Каталоги
    UPLOAD_DIR: str = "uploads"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True
    STATIC_DIR: str = str(Path(__file__).resolve().parent / "static")
    
    class Config:
        env_file = ".env"
        case_sensitive = True
    
    def startup_error(self) -> Optional[str]:
        """
        Проверка обязательных настроек при старте.
        
        Returns:
            Текст фатальной ошибки или None, если всё в порядке.
        """
        if not self.OPENAI_API_KEY.strip():
            return "OpenAI API key is missing. Please configure OPENAI_API_KEY in the .env file."
        return None


config = Settings()
