from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "ReceiptSnap"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:8081", "http://localhost:19006"]

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    # Storage
    RECEIPT_BUCKET: str = "receipts"
    IMAGE_EXTENSION: str = ".jpg"
    UPLOAD_TRANSPORT: str = "blob"  # blob | multipart

    # Extraction
    OPENAI_API_KEY: str = ""
    EXTRACTION_MODEL: str = "gpt-4o-mini"

    # Network calls (seconds)
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Wall-clock zone for receipt date/time fields; host zone when unset
    LOCAL_TIMEZONE: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
