import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Settings:
    # -------------------------------------------------------
    # Project
    # -------------------------------------------------------
    PROJECT_NAME: str = "Family Tree API"
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # -------------------------------------------------------
    # Server
    # -------------------------------------------------------
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", 3001))

    # Comma separated, "*" allows everything (dev default)
    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    # -------------------------------------------------------
    # Storage folders
    # -------------------------------------------------------
    DATA_DIR: str = os.getenv("DATA_DIR", "./data")
    BACKUP_DIR: str = os.getenv("BACKUP_DIR", "./backups")
    IMAGES_DIR: str = os.getenv("IMAGES_DIR", "./images")

    # -------------------------------------------------------
    # Limits / retention
    # -------------------------------------------------------
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))
    BACKUP_RETENTION_COUNT: int = int(os.getenv("BACKUP_RETENTION_COUNT", 10))

    # -------------------------------------------------------
    # Client / auto-save
    # -------------------------------------------------------
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:3001/api")
    AUTOSAVE_DELAY_MS: int = int(os.getenv("AUTOSAVE_DELAY_MS", 2000))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", 3))
    RETRY_DELAY_MS: int = int(os.getenv("RETRY_DELAY_MS", 5000))
    # when offline, ping /health once before skipping a queued save
    AUTOSAVE_PROBE_OFFLINE: bool = os.getenv("AUTOSAVE_PROBE_OFFLINE", "false").lower() in ("1", "true", "yes")


# Single instance that is imported everywhere
settings = Settings()
