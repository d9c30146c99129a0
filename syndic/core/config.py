from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///syndic.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_ENV = os.getenv("APP_ENV", "production")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "console")

    CURRENCY = os.getenv("CURRENCY", "MAD")
    OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "15"))
    MOBILE_TOKEN_MAX_AGE = int(os.getenv("MOBILE_TOKEN_MAX_AGE", str(30 * 24 * 3600)))
    UPLOAD_MAX_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))
    FEE_REMINDER_DAYS_BEFORE = int(os.getenv("FEE_REMINDER_DAYS_BEFORE", "3"))

    SMTP_HOST = os.getenv("SMTP_HOST", "")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "false").lower() == "true"
    MAIL_FROM = os.getenv("MAIL_FROM", "noreply@syndic.local")
    MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "Syndic")
