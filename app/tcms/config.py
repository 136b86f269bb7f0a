"""
Settings come from the process environment (a ``.env`` file is loaded first by
``create_app``). ``load_config`` flattens them into the mapping Flask expects.
"""
import os
from dataclasses import dataclass

UPLOAD_LIMIT_BYTES = 10 * 1024 * 1024  # CVs and expense receipts


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    # training-center specifics
    currency: str
    registration_prefix: str
    page_size: int

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")


def _env(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw.lstrip("-").isdigit() else default


def load_settings() -> Settings:
    return Settings(
        secret_key=_env("SECRET_KEY", "change-me"),
        env=_env("ENV", "development").lower(),
        database_url=_env("DATABASE_URL", "sqlite:///tcms.db"),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        currency=_env("CURRENCY", "RWF"),
        registration_prefix=_env("REGISTRATION_PREFIX", "EDT"),
        page_size=max(1, _env_int("PAGE_SIZE", 10)),
        storage_backend=_env("STORAGE_BACKEND", "local").lower(),
        storage_root=_env("STORAGE_ROOT"),
        s3_endpoint=_env("S3_ENDPOINT"),
        s3_region=_env("S3_REGION", "nyc3"),
        s3_bucket=_env("S3_BUCKET"),
        s3_access_key_id=_env("S3_ACCESS_KEY_ID"),
        s3_secret_access_key=_env("S3_SECRET_ACCESS_KEY"),
    )


def load_config() -> dict:
    s = load_settings()
    config = {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "CURRENCY": s.currency,
        "REGISTRATION_PREFIX": s.registration_prefix,
        "PAGE_SIZE": s.page_size,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "MAX_CONTENT_LENGTH": UPLOAD_LIMIT_BYTES,
    }
    # cookies and CSRF; the test suite posts forms without tokens
    config.update(
        CSRF_ENABLED=s.env != "test",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=s.is_production,
    )
    return config
