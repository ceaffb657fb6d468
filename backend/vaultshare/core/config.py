import os


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./vaultshare.db")
    DATABASE_ECHO: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "minio:9000")
    MINIO_ACCESS_KEY: str = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
    MINIO_SECRET_KEY: str = os.getenv("MINIO_SECRET_KEY", "minioadmin")
    MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "secure-documents")
    MINIO_SECURE: bool = os.getenv("MINIO_SECURE", "false").lower() == "true"

    # "minio" signs locally, "http" calls a remote signing service
    SIGNER_BACKEND: str = os.getenv("SIGNER_BACKEND", "minio")
    SIGNER_BASE_URL: str = os.getenv("SIGNER_BASE_URL", "http://localhost:8000")
    SIGNER_TIMEOUT_SECONDS: float = float(os.getenv("SIGNER_TIMEOUT_SECONDS", "10"))
    # shared secret for the /signed-urls API; empty disables those endpoints
    SIGNER_API_KEY: str = os.getenv("SIGNER_API_KEY", "")

    VIDEO_URL_TTL_SECONDS: int = int(os.getenv("VIDEO_URL_TTL_SECONDS", str(6 * 60 * 60)))
    DOCUMENT_URL_TTL_SECONDS: int = int(os.getenv("DOCUMENT_URL_TTL_SECONDS", str(24 * 60 * 60)))
    URL_CACHE_SAFETY_MARGIN_SECONDS: int = int(os.getenv("URL_CACHE_SAFETY_MARGIN_SECONDS", "60"))
    URL_CACHE_MAX_ENTRIES: int = int(os.getenv("URL_CACHE_MAX_ENTRIES", "0"))

    SIGNED_URL_RETRY_ATTEMPTS: int = int(os.getenv("SIGNED_URL_RETRY_ATTEMPTS", "3"))
    SIGNED_URL_RETRY_BACKOFF_SECS: float = float(os.getenv("SIGNED_URL_RETRY_BACKOFF_SECS", "0.5"))

    FOLDER_MAX_DEPTH: int = int(os.getenv("FOLDER_MAX_DEPTH", "32"))

    MAINTENANCE_INTERVAL_SECONDS: int = int(os.getenv("MAINTENANCE_INTERVAL_SECONDS", "300"))
    MAINTENANCE_MAX_RECORDS_PER_LOOP: int = int(os.getenv("MAINTENANCE_MAX_RECORDS_PER_LOOP", "200"))

    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "vaultshare_session")
    SESSION_IDLE_SECONDS: int = int(os.getenv("SESSION_IDLE_SECONDS", str(12 * 60 * 60)))
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "")
    HOME_URL: str = os.getenv("HOME_URL", "/")

settings = Settings()
