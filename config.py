# config.py
"""Worker configuration"""
from typing import List
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path

class Settings(BaseSettings):
    """Application configuration"""

    # Logger configuration
    LOGGER_NAME: str = "docchat"
    LOG_LEVEL: str = "DEBUG"
    LOG_FILE_PATH: str = get_log_file_path()

    # Inference engine (local Ollama server)
    LLM_MODEL_NAME: str = "llama3.2:3b"
    LLM_BASE_URL: str = "http://localhost:11434"
    LLM_TEMPERATURE: float = 0.7
    REQUEST_TIMEOUT: int = 120
    PULL_TIMEOUT: int = 3600  # Weight download can be slow on first start

    # Embedding model
    EMBEDDING_MODEL_NAME: str = "paraphrase-multilingual-mpnet-base-v2"

    # Document processing
    CHUNK_SIZE: int = 500
    CHUNK_OVERLAP: int = 50
    PDF_ITEM_SEPARATOR: str = " "
    MAX_FILE_SIZE: int = 50 * 1024 * 1024
    DOCUMENT_EXTENSIONS: List[str] = ["pdf"]

    # Retrieval
    RETRIEVAL_TOP_K: int = 10
    MMR_LAMBDA: float = 0.75
    MMR_FETCH_K: int = 20

    # Worker
    COMMAND_QUEUE_SIZE: int = 16
    INGESTION_COMPLETE_MESSAGE: str = (
        "The document has been processed successfully! "
        "You can now ask questions about its content."
    )

    # App metadata
    APP_TITLE: str = "Document Chat Assistant"
    APP_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
