from pydantic import BaseModel, ConfigDict, Field


class CsrfTokenOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    token: str
    token_name: str = Field(alias="tokenName")
    header_name: str = Field(alias="headerName")


class UploadOut(BaseModel):
    success: bool = True
    key: str
    url: str


class ConfigOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str
    environment: str
    last_updated: str = Field(alias="lastUpdated")
    admin_email: str = Field(alias="ADMIN_EMAIL")
    from_email: str = Field(alias="FROM_EMAIL")
    max_file_size: int = Field(alias="MAX_FILE_SIZE")
    max_education_entries: int = Field(alias="MAX_EDUCATION_ENTRIES")
    max_employment_entries: int = Field(alias="MAX_EMPLOYMENT_ENTRIES")
    data_retention_hours: int = Field(alias="DATA_RETENTION_HOURS")
    enable_pdf_generation: bool = Field(alias="ENABLE_PDF_GENERATION")
    enable_email_notifications: bool = Field(alias="ENABLE_EMAIL_NOTIFICATIONS")
    enable_google_sheets: bool = Field(alias="ENABLE_GOOGLE_SHEETS")
    enable_file_uploads: bool = Field(alias="ENABLE_FILE_UPLOADS")
    enable_audit_logging: bool = Field(alias="ENABLE_AUDIT_LOGGING")
    enable_debug_mode: bool = Field(alias="ENABLE_DEBUG_MODE")
    default_language: str = Field(alias="DEFAULT_LANGUAGE")
    supported_languages: list[str] = Field(alias="SUPPORTED_LANGUAGES")


class HealthOut(BaseModel):
    status: str
    environment: str
