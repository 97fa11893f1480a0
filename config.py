"""
Configuration management for QuizGen AI Service
"""
import logging
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "QuizGen AI Service"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # File Upload
    max_file_size_mb: int = 50
    allowed_extensions: List[str] = Field(
        default=[
            ".pdf", ".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tiff",
            ".docx", ".pptx", ".txt",
        ]
    )

    # Text Processing
    chunk_size: int = 1000

    # Quiz Limits
    max_total_questions: int = 50
    max_options_per_question: int = 10

    # LLM Generation
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"
    local_model_path: str = "./models/llama3.2/Llama-3.2-3B-Instruct-Q4_K_M.gguf"
    llm_max_tokens_quiz: int = 2000
    llm_temperature: float = 0.5

    # Error Handling
    max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    chunk_attempts: int = 3
    request_timeout_seconds: float = 120.0

    # Circuit Breaker
    enable_circuit_breaker: bool = True
    cb_failure_threshold: int = 5
    cb_timeout: float = 60.0

    # Auth
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 30
    # Accounts registered with these emails get admin access
    admin_emails: List[str] = Field(default_factory=list)

    # Logging
    log_dir: str = "./logs"
    log_level: str = "INFO"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings


def print_settings():
    """Log current settings (for debugging)"""
    logger = logging.getLogger("quizgen.config")
    logger.info("%s v%s", settings.app_name, settings.app_version)
    logger.info("Host: %s:%s", settings.host, settings.port)
    logger.info("Debug Mode: %s", settings.debug)
    logger.info("Chunk Size: %d characters", settings.chunk_size)
    logger.info("Max Retries: %d", settings.max_retries)
    logger.info("Circuit Breaker Enabled: %s", settings.enable_circuit_breaker)
