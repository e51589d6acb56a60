import os
from functools import lru_cache
from pydantic import BaseModel


class Settings(BaseModel):
    env: str = os.getenv("ENV", "dev")
    port: int = int(os.getenv("PORT", "8080"))
    log_level: str = os.getenv("LOG_LEVEL", "info")
    service_name: str = os.getenv("SERVICE_NAME", "revdel")

    # Database
    db_url: str | None = os.getenv("DB_URL")

    # File storage: "local" keeps public/ and deleted/ zones under one directory,
    # "s3" uses one bucket per zone.
    storage_backend: str = os.getenv("STORAGE_BACKEND", "local")
    local_file_path: str = os.getenv("LOCAL_FILE_PATH", "/app/files")
    s3_public_bucket: str | None = os.getenv("S3_PUBLIC_BUCKET")
    s3_deleted_bucket: str | None = os.getenv("S3_DELETED_BUCKET")
    aws_region: str = os.getenv("AWS_REGION", "us-east-1")

    # Public URLs used when purging caches
    site_url: str = os.getenv("SITE_URL", "http://localhost:8080/wiki")
    file_url_base: str = os.getenv("FILE_URL_BASE", "http://localhost:8080/images")

    # Post-commit collaborators (disabled if not set)
    cdn_purge_endpoint: str | None = os.getenv("CDN_PURGE_ENDPOINT")
    cdn_purge_timeout_seconds: float = float(
        os.getenv("CDN_PURGE_TIMEOUT_SECONDS", "5")
    )
    sns_topic_arn: str | None = os.getenv("SNS_TOPIC_ARN")

    # Session Configuration
    session_secret_key: str = os.getenv(
        "SESSION_SECRET_KEY", "dev-secret-change-in-production"
    )
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "revdel_session")
    # Session expiry in seconds (default: 8 hours)
    session_cookie_max_age: int = int(os.getenv("SESSION_COOKIE_MAX_AGE", "28800"))

    # Observability
    otel_exporter_otlp_endpoint: str | None = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")


@lru_cache
def get_settings() -> Settings:
    return Settings()
