from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "receipt-core"
    LOG_LEVEL: str = "INFO"

    # OCR (primary, on-device)
    TESSERACT_CMD: str = "tesseract"
    OCR_LANGUAGE: str = "eng"
    OCR_TIMEOUT_SECONDS: float = 30.0
    OCR_MIN_CONFIDENCE: float = 0.55  # canonical 0-1 scale (55/100 engine scale)
    OCR_CHAR_WHITELIST: str = (
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
        "$£€¥@%&*()#/-+.,:;!?"
    )

    # OCR (secondary, cloud)
    CLOUD_OCR_ENABLED: bool = True
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None

    # Image preprocessing
    PREPROCESS_MIN_WIDTH: int = 1400
    PREPROCESS_MAX_UPSCALE: float = 2.5
    PREPROCESS_GAMMA: float = 1.1
    IMAGE_CONVERTERS: List[str] = ["magick", "convert", "heif-convert"]
    IMAGE_CONVERTER_TIMEOUT: float = 60.0

    # Parsing
    DEFAULT_CURRENCY: str = "USD"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
