# cardmaker/config/settings.py
from pydantic_settings import BaseSettings
from typing import Dict, List, Optional

class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Greeting Card Service"

    # CORS
    ALLOWED_HOSTS: List[str] = ["*"]

    # Auth (admin routes)
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: str = "secret"

    # Persistence
    DATABASE_URL: str = "sqlite+aiosqlite:///./cardmaker.db"
    DRAFT_CACHE_DIR: str = ".cardmaker"

    # Fonts: directory scan plus explicit family -> {weight: path or URL}
    FONTS_DIR: str = "fonts"
    FONT_SOURCES: Dict[str, Dict[int, str]] = {}

    # Rendering
    ASSET_TIMEOUT: float = 30.0
    DEFAULT_PIXEL_RATIO: float = 2.0
    DEFAULT_JPEG_QUALITY: float = 0.85
    MAX_EXPORT_PIXELS: int = 64_000_000

    # Env
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Cloudinary (either use CLOUDINARY_URL or the 3 fields below)
    CLOUDINARY_URL: Optional[str] = None
    CLOUDINARY_CLOUD_NAME: Optional[str] = None
    CLOUDINARY_API_KEY: Optional[str] = None
    CLOUDINARY_API_SECRET: Optional[str] = None
    CLOUDINARY_FOLDER: str = "greeting-cards"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
