from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Student CSV import limits
    student_import_max_file_bytes: int = Field(5 * 1024 * 1024, alias="STUDENT_IMPORT_MAX_FILE_BYTES")
    student_import_max_preview_rows: int = Field(1000, alias="STUDENT_IMPORT_MAX_PREVIEW_ROWS")
    student_import_preview_sample_size: int = Field(10, alias="STUDENT_IMPORT_PREVIEW_SAMPLE_SIZE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
