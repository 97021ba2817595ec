"""
Configuration management for the card pipeline API.

Handles environment variables, storage and OCR settings.
"""

import os
import logging
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class Config:
    """Application configuration class.

    Attributes:
        DEBUG: Enable debug mode
        TESTING: Enable testing mode
        SECRET_KEY: Flask secret key
        MAX_CONTENT_LENGTH: Maximum upload file size (5MB default)
        UPLOAD_FOLDER: Directory for transient local card images
        DATABASE_PATH: SQLite file holding cards, contacts and activity logs
        STORAGE_BACKEND: "local" or "supabase"
        OCR_ENGINE: "easyocr" or "gemini"
        OCR_TIMEOUT: Seconds before a recognition call is abandoned
        PROCESSING_WORKERS: Background worker threads
        PROCESSING_QUEUE_SIZE: Cards allowed to wait for a worker
    """

    # Flask Settings
    DEBUG: bool = os.getenv("CARD_API_DEBUG", "False").lower() == "true"
    TESTING: bool = os.getenv("CARD_API_TESTING", "False").lower() == "true"
    SECRET_KEY: str = os.getenv("CARD_API_SECRET_KEY", "dev-secret-key-change-in-production")

    # File Upload Settings
    MAX_CONTENT_LENGTH: int = int(os.getenv("CARD_API_MAX_FILE_SIZE", str(5 * 1024 * 1024)))
    UPLOAD_FOLDER: str = os.getenv("CARD_API_UPLOAD_FOLDER", "uploads/cards")
    ALLOWED_EXTENSIONS: set = {"png", "jpg", "jpeg", "gif", "webp"}

    # Persistence
    DATABASE_PATH: str = os.getenv("CARD_API_DATABASE_PATH", "data/cardscan.db")

    # Blob Storage
    STORAGE_BACKEND: str = os.getenv("CARD_API_STORAGE_BACKEND", "local")
    BLOB_FOLDER: str = os.getenv("CARD_API_BLOB_FOLDER", "blobs")
    SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    SUPABASE_BUCKET: str = os.getenv("SUPABASE_BUCKET", "card-images")

    # OCR Settings
    OCR_ENGINE: str = os.getenv("CARD_API_OCR_ENGINE", "easyocr")
    OCR_LANGUAGES: list = ["en"]  # EasyOCR language codes
    OCR_GPU: bool = os.getenv("CARD_API_OCR_GPU", "False").lower() == "true"
    OCR_MODEL_DIR: str = os.getenv("CARD_API_OCR_MODEL_DIR", "./models")
    OCR_TIMEOUT: float = float(os.getenv("CARD_API_OCR_TIMEOUT", "60"))
    GOOGLE_API_KEY: Optional[str] = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.getenv("CARD_API_GEMINI_MODEL", "gemini-2.5-flash")

    # Background processing
    PROCESSING_WORKERS: int = int(os.getenv("CARD_API_PROCESSING_WORKERS", "2"))
    PROCESSING_QUEUE_SIZE: int = int(os.getenv("CARD_API_PROCESSING_QUEUE_SIZE", "100"))

    # Logging
    LOG_LEVEL: str = os.getenv("CARD_API_LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"

    @classmethod
    def init_app(cls, app) -> None:
        """Initialize Flask app with configuration.

        Args:
            app: Flask application instance
        """
        app.config.from_object(cls)

        os.makedirs(cls.UPLOAD_FOLDER, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL.upper()),
            format=cls.LOG_FORMAT
        )

        logger.info("Configuration initialized successfully")


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    LOG_LEVEL = "INFO"


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    LOG_LEVEL = "DEBUG"
    OCR_TIMEOUT = 5.0
    PROCESSING_WORKERS = 1


# Configuration mapping
config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> Config:
    """Get configuration class by name.

    Args:
        config_name: Configuration name (development, production, testing)

    Returns:
        Configuration class
    """
    if config_name is None:
        config_name = os.getenv("CARD_API_ENV", "development")
    return config_by_name.get(config_name, DevelopmentConfig)
