import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str
    csrf_enabled: bool
    cors_origins: list[str]

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    max_images_per_material: int
    max_image_bytes: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    is_production = env.lower() in ("prod", "production")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///catalog.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        csrf_enabled=_getenv("CSRF_ENABLED", "1" if is_production else "0") == "1",
        cors_origins=[o.strip() for o in _getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        max_images_per_material=_getenv_int("MAX_IMAGES_PER_MATERIAL", 5),
        max_image_bytes=_getenv_int("MAX_IMAGE_BYTES", 5 * 1024 * 1024),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env.lower() in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "CSRF_ENABLED": s.csrf_enabled,
        "CORS_ORIGINS": s.cors_origins,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "MAX_IMAGES_PER_MATERIAL": s.max_images_per_material,
        "MAX_IMAGE_BYTES": s.max_image_bytes,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # one multipart request carries at most a full set of images
        "MAX_CONTENT_LENGTH": s.max_images_per_material * s.max_image_bytes + 1024 * 1024,
    }
