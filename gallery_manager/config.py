"""
Configuration management for the gallery service.
Uses Pydantic Settings for environment variable management.
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Gallery Manager API"
    API_VERSION: str = "0.1.0"
    API_DESCRIPTION: str = "Versioned image galleries attached to owner records"

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]

    # Database Configuration
    # Empty value falls back to an in-memory SQLite database
    DATABASE_URL: str = ""

    # Storage layout: {GALLERY_DIRECTORY}/{galleryId}/{imageId}/{version}.{GALLERY_EXTENSION}
    GALLERY_DIRECTORY: str = "storage/gallery"
    # Public URL of GALLERY_DIRECTORY, without trailing slash
    GALLERY_URL: str = "/storage/gallery"
    GALLERY_EXTENSION: str = "jpg"
    # Query parameter name for the modification time hash; empty disables cache busting
    GALLERY_TIME_HASH: str = "_"
    # Owner types served by the HTTP routes (e.g. ["Post", "Product"])
    GALLERY_TYPES: List[str] = ["Post"]

    # Identity settings
    PK_GLUE: str = "_"
    TEMPORARY_PREFIX: str = "temp"
    TEMPORARY_TEMPLATE: str = "{temporaryPrefix}-{temporaryIndex}-{combineId}"
    TEMPORARY_INDEX_FILTER: str = r"\d+"

    # Remote image processing service (imaginary)
    IMAGINARY_URL: str = "http://imaginary:9000"
    # GALLERY_DIRECTORY as mounted inside the imaginary container
    # Leave empty when both processes share the same filesystem paths
    IMAGINARY_DIRECTORY: str = ""
    IMAGINARY_TIMEOUT: float = 30.0

    # Default preview version size
    PREVIEW_WIDTH: int = 130
    PREVIEW_HEIGHT: int = 88

    # Maintenance
    REGENERATE_CONCURRENCY: int = 4
    # Orphan galleries younger than this are never reaped (None disables the check)
    ORPHAN_MIN_AGE_HOURS: Optional[float] = 24.0

    # Admin Password for maintenance endpoints
    # Should be bcrypt hashed password
    ADMIN_PASSWORD_HASH: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Global settings instance
settings = Settings()
