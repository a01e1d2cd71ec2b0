from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "LibraryCatalog"
    DATABASE_URL: str = "sqlite:///./library_catalog.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # MinIO/S3 settings
    minio_endpoint: str = "localhost:9000"
    minio_secure: bool = False
    minio_access_key: str = ""
    minio_secret_key: str = ""
    minio_bucket: str = "library-catalog"
    minio_region: Optional[str] = None

    LIBRARY_UPLOAD_PREFIX: str = "library/items"
    LIBRARY_THUMBNAIL_PREFIX: str = "library/thumbnails"
    MAX_UPLOAD_SIZE: int = 200 * 1024 * 1024  # 200 MB

    DEFAULT_ITEM_TYPE: str = "PDF"
    DEFAULT_LANGUAGE: str = "en"
    DEFAULT_QUERY_LIMIT: int = 10

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

settings = Settings()
