# backend/cifra/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cifra.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///cifra.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public site URL used for return URLs and download links in emails
    SITE_URL = os.environ.get("SITE_URL", "http://localhost:3000").rstrip("/")

    # YooKassa payment gateway
    YOOKASSA_SHOP_ID = os.environ.get("YOOKASSA_SHOP_ID", "")
    YOOKASSA_SECRET_KEY = os.environ.get("YOOKASSA_SECRET_KEY", "")
    YOOKASSA_API_BASE = os.environ.get("YOOKASSA_API_BASE", "https://api.yookassa.ru/v3").rstrip("/")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "RUB")

    # Outbound HTTP calls (gateway, email)
    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))

    # S3-compatible object storage (Yandex Object Storage by default)
    S3_ENDPOINT_URL = os.environ.get("S3_ENDPOINT_URL", "https://storage.yandexcloud.net")
    S3_REGION = os.environ.get("S3_REGION", "ru-central1")
    S3_ACCESS_KEY_ID = os.environ.get("S3_ACCESS_KEY_ID", "")
    S3_SECRET_ACCESS_KEY = os.environ.get("S3_SECRET_ACCESS_KEY", "")
    S3_BUCKET = os.environ.get("S3_BUCKET", "cifra-test")
    SIGNED_URL_TTL_SECONDS = int(os.environ.get("SIGNED_URL_TTL_SECONDS", "3600"))

    # Files uploaded before the object storage migration
    LEGACY_FILES_BASE_URL = os.environ.get("LEGACY_FILES_BASE_URL", "http://127.0.0.1:8090/api/files/products").rstrip("/")

    # Transactional email (Resend)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
    RESEND_API_BASE = os.environ.get("RESEND_API_BASE", "https://api.resend.com").rstrip("/")
    MAIL_FROM = os.environ.get("MAIL_FROM", "Cifra <noreply@cifra.local>")

    # Marketplace economics (amounts in whole currency units)
    PLATFORM_FEE_BPS = int(os.environ.get("PLATFORM_FEE_BPS", "500"))  # 5%
    PLATFORM_FLAT_FEE = int(os.environ.get("PLATFORM_FLAT_FEE", "30"))
    MIN_PRODUCT_PRICE = int(os.environ.get("MIN_PRODUCT_PRICE", "99"))

    DOWNLOAD_TOKEN_TTL_DAYS = int(os.environ.get("DOWNLOAD_TOKEN_TTL_DAYS", "30"))

    # Manual fulfillment endpoint that skips gateway verification
    TEST_WEBHOOK_ENABLED = _env_bool("TEST_WEBHOOK_ENABLED", False)

    NOTIFICATION_MAX_ATTEMPTS = int(os.environ.get("NOTIFICATION_MAX_ATTEMPTS", "5"))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
