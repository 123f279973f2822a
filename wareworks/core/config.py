import os

from pydantic import EmailStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from wareworks.core.paths import resolve_repo_path


def _env_files() -> list[str]:
    base = resolve_repo_path(".env")
    env = os.getenv("WW_ENVIRONMENT", "").strip().lower()
    files = [str(base)]
    if env and env != "development":
        files.append(str(resolve_repo_path(f".env.{env}")))
    else:
        files.append(str(resolve_repo_path(".env.local")))
    return files


class Settings(BaseSettings):
    app_name: str = "WareWorks Applications"
    app_version: str = "4.0.0"
    environment: str = "development"

    # Feature flags
    enable_pdf_generation: bool = True
    enable_email_notifications: bool = True
    enable_google_sheets: bool = False
    enable_file_uploads: bool = True
    enable_audit_logging: bool = True
    enable_debug_mode: bool = False

    default_language: str = "en"
    supported_languages: list[str] = ["en", "es"]
    max_education_entries: int = 5
    max_employment_entries: int = 10
    data_retention_hours: int = 24

    rate_limit_submission_window_seconds: int = 15 * 60
    rate_limit_submission_max: int = 3
    rate_limit_api_window_seconds: int = 5 * 60
    rate_limit_api_max: int = 100
    rate_limit_upload_window_seconds: int = 10 * 60
    rate_limit_upload_max: int = 10
    rate_limit_download_window_seconds: int = 60
    rate_limit_download_max: int = 5
    rate_limit_sweep_minutes: int = 5

    csrf_token_name: str = "csrfToken"
    csrf_header_name: str = "x-csrf-token"
    csrf_cookie_name: str = "csrf-secret"
    csrf_max_age_seconds: int = 60 * 60
    # None -> secure only in production
    csrf_cookie_secure: bool | None = None
    csrf_sweep_minutes: int = 10
    retention_sweep_minutes: int = 30

    allowed_domains: list[str] = [
        "wareworks.me",
        "www.wareworks.me",
        "wareworks.webflow.io",
        "localhost",
        "127.0.0.1",
    ]
    cors_origins: list[str] = [
        "https://wareworks.me",
        "https://www.wareworks.me",
        "https://wareworks.webflow.io",
        "http://localhost:3000",
    ]

    phone_pattern: str = r"^(\(\d{3}\) |\d{3}-)\d{3}-\d{4}$"
    max_document_bytes: int = 10 * 1024 * 1024
    max_payload_bytes: int = 50 * 1024 * 1024

    templates_dir: str = "templates/pdf"
    application_template: str = "Wareworks Application.pdf"
    i9_template: str = "i-9.pdf"
    company_name: str = "WareWorks"

    # Notifications
    hr_email: EmailStr = "hr@wareworks.me"
    admin_email: EmailStr = "admin@wareworks.me"
    from_email: EmailStr = "web@wareworks.me"
    from_name: str = "Wareworks Application System"
    google_application_credentials: str = ""
    enable_gmail: bool = False
    gmail_sender_email: str = "web@wareworks.me"
    gmail_sender_name: str = "WareWorks Applications"
    mailgun_api_key: str = ""
    mailgun_domain: str = ""
    mailgun_base_url: str = "https://api.mailgun.net/v3"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    notification_timeout_seconds: int = 10

    google_sheets_id: str = ""
    google_sheets_tab: str = "WareWorks_Submissions_v4"

    drive_uploads_folder_id: str = ""
    local_uploads_dir: str = "local_uploads/wareworks"

    model_config = SettingsConfigDict(env_prefix="WW_", env_file=_env_files(), extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def csrf_secure_cookie(self) -> bool:
        if self.csrf_cookie_secure is None:
            return self.is_production
        return self.csrf_cookie_secure


settings = Settings()
