from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Membership API"
    ENV: str = "development"

    # -------------------------------------------------
    # Frontend origins (CORS is built from these below)
    # -------------------------------------------------
    FRONTEND_ORIGINS: List[str] = [
        "http://localhost:8081",
        "http://localhost:19006",
    ]
    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Persistence
    # "supabase" for PostgREST tables, "memory" for local dev / tests
    # -------------------------------------------------
    STORAGE_BACKEND: str = "supabase"

    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    ACCOUNTS_TABLE: str = "accounts"
    AUTHORIZED_MEMBERS_TABLE: str = "authorized_members"

    # -------------------------------------------------
    # Verification
    # -------------------------------------------------
    # E-mails that are created as approved admins at signup
    ADMIN_EMAILS: List[str] = []

    # 2-digit country codes stripped from 12-digit phone numbers
    PHONE_COUNTRY_CODES: List[str] = ["91"]

    # A claim younger than this whose account is not written yet is in flight
    CLAIM_GRACE_SECONDS: int = Field(
        60,
        description="Seconds a dangling registry claim is still treated as live",
    )

    # -------------------------------------------------
    # SMTP Email Notifications
    # -------------------------------------------------
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = None
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None
    SMTP_FROM: Optional[str] = None

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    model_config = SettingsConfigDict(case_sensitive=True)


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list dynamically after loading settings
# -------------------------------------------------
settings.BACKEND_CORS_ORIGINS = sorted(
    {origin.rstrip("/") for origin in settings.FRONTEND_ORIGINS}
)

# Allowlist comparisons are done on lower-cased addresses
settings.ADMIN_EMAILS = [e.strip().lower() for e in settings.ADMIN_EMAILS if e.strip()]
