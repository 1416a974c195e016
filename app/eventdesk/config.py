import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    log_level: str

    database_url: str
    data_backend: str
    supabase_url: str
    supabase_key: str

    storage_backend: str
    storage_root: str
    storage_public_base_url: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    line_channel_id: str
    liff_id_organizer: str
    liff_id_store: str
    postal_api_url: str

    draft_debounce_seconds: float
    max_draft_bytes: int
    invitation_ttl_days: int
    max_upload_bytes: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        database_url=_getenv("DATABASE_URL", "sqlite:///eventdesk.db"),
        data_backend=_getenv("DATA_BACKEND", "sql").lower(),
        supabase_url=_getenv("SUPABASE_URL", ""),
        supabase_key=_getenv("SUPABASE_KEY", ""),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", os.path.join(os.getcwd(), "storage")),
        storage_public_base_url=_getenv("STORAGE_PUBLIC_BASE_URL", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "ap-northeast-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        line_channel_id=_getenv("LINE_CHANNEL_ID", ""),
        liff_id_organizer=_getenv("LIFF_ID_ORGANIZER", ""),
        liff_id_store=_getenv("LIFF_ID_STORE", ""),
        postal_api_url=_getenv("POSTAL_API_URL", "https://zipcloud.ibsnet.co.jp/api/search"),
        draft_debounce_seconds=_getenv_float("DRAFT_DEBOUNCE_SECONDS", 0.8),
        max_draft_bytes=_getenv_int("MAX_DRAFT_BYTES", 64 * 1024),
        invitation_ttl_days=_getenv_int("INVITATION_TTL_DAYS", 7),
        max_upload_bytes=_getenv_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "LOG_LEVEL": s.log_level,
        "DATABASE_URL": s.database_url,
        "DATA_BACKEND": s.data_backend,
        "SUPABASE_URL": s.supabase_url,
        "SUPABASE_KEY": s.supabase_key,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "STORAGE_PUBLIC_BASE_URL": s.storage_public_base_url,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "LINE_CHANNEL_ID": s.line_channel_id,
        "LIFF_ID_ORGANIZER": s.liff_id_organizer,
        "LIFF_ID_STORE": s.liff_id_store,
        "POSTAL_API_URL": s.postal_api_url,
        "DRAFT_DEBOUNCE_SECONDS": s.draft_debounce_seconds,
        "MAX_DRAFT_BYTES": s.max_draft_bytes,
        "INVITATION_TTL_DAYS": s.invitation_ttl_days,
        "MAX_UPLOAD_BYTES": s.max_upload_bytes,
        # CSRF is skipped for the test client
        "CSRF_ENABLED": s.env != "test",
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request ceiling; per-file limit is MAX_UPLOAD_BYTES
        "MAX_CONTENT_LENGTH": 6 * s.max_upload_bytes,
    }
