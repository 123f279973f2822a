from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from wareworks.core.config import Settings
from wareworks.core.errors import SpreadsheetError
from wareworks.core.paths import resolve_repo_path
from wareworks.services.notifications import summarize_documents
from wareworks.services.pdf_fields import text_of

logger = logging.getLogger("ww.sheets")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def ssn_hash(value: Any) -> str:
    raw = text_of(value)
    if not raw:
        return ""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def _field(key: str, default: str = "") -> Callable[[Mapping[str, Any]], str]:
    return lambda payload: text_of(payload.get(key)) or default


def _json(key: str) -> Callable[[Mapping[str, Any]], str]:
    return lambda payload: json.dumps(payload.get(key) or [], default=str)


def _documents(kind: str, as_count: bool = False) -> Callable[[Mapping[str, Any]], str]:
    def _extract(payload: Mapping[str, Any]) -> str:
        count = summarize_documents(payload)[kind]
        if as_count:
            return str(count)
        return "Yes" if count else "No"

    return _extract


COLUMNS: tuple[tuple[str, Callable[[Mapping[str, Any]], str]], ...] = (
    ("Submission ID", _field("submissionId")),
    ("Timestamp", _field("serverTimestamp")),
    ("Language", _field("language", "en")),
    ("Legal First Name", _field("legalFirstName")),
    ("Middle Initial", _field("middleInitial")),
    ("Legal Last Name", _field("legalLastName")),
    ("Other Last Names", _field("otherLastNames")),
    ("Street Address", _field("streetAddress")),
    ("Apt Number", _field("aptNumber")),
    ("City", _field("city")),
    ("State", _field("state")),
    ("ZIP Code", _field("zipCode")),
    ("Phone Number", _field("phoneNumber")),
    ("SSN Hash", lambda payload: ssn_hash(payload.get("socialSecurityNumber"))),
    ("Date of Birth", _field("dateOfBirth")),
    ("Email", _field("email")),
    ("Home Phone", _field("homePhone")),
    ("Cell Phone", _field("cellPhone")),
    ("Emergency Name", _field("emergencyName")),
    ("Emergency Phone", _field("emergencyPhone")),
    ("Emergency Relationship", _field("emergencyRelationship")),
    ("Citizenship Status", _field("citizenshipStatus")),
    ("USCIS A-Number", _field("uscisANumber")),
    ("Work Auth Expiration", lambda p: text_of(p.get("workAuthorizationExpiration")) or text_of(p.get("workAuthExpiration"))),
    ("Alien Document Type", _field("alienDocumentType")),
    ("Alien Document Number", _field("alienDocumentNumber")),
    ("Document Country", _field("documentCountry")),
    ("Age 18+", _field("age18")),
    ("Transportation", _field("transportation")),
    ("Work Authorization", _field("workAuthorized")),
    ("Position Applied", _field("positionApplied")),
    ("Expected Salary", _field("expectedSalary")),
    ("Job Discovery", _field("jobDiscovery")),
    ("Previously Applied", _field("previouslyApplied")),
    ("Previous Application Details", _field("previousApplicationWhen")),
    ("Education History", _json("education")),
    ("Employment History", _json("employment")),
    ("Has ID Document", _documents("identification")),
    ("Has Resume", _documents("resume")),
    ("Certification Count", _documents("certification", as_count=True)),
    ("IP Address", _field("ipAddress")),
    ("User Agent", _field("userAgent")),
    ("Security Fingerprint", _field("securityFingerprint")),
)

HEADERS = [header for header, _ in COLUMNS] + ["Processing Time"]


def build_row(payload: Mapping[str, Any], *, processing_ms: int | None = None) -> list[str]:
    row = [extract(payload) for _, extract in COLUMNS]
    row.append("" if processing_ms is None else str(processing_ms))
    return row


@dataclass(frozen=True)
class SheetAppendResult:
    success: bool
    sheet: str
    updated_range: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "sheet": self.sheet}
        if self.updated_range:
            data["updatedRange"] = self.updated_range
        if self.error:
            data["error"] = self.error
        return data


class SpreadsheetRecorder:
    """Appends one row per submission to a Google Sheet. The SSN is stored hashed."""

    def __init__(self, *, spreadsheet_id: str, sheet_name: str, credentials_path: str) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.credentials_path = credentials_path

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpreadsheetRecorder":
        return cls(
            spreadsheet_id=settings.google_sheets_id,
            sheet_name=settings.google_sheets_tab,
            credentials_path=settings.google_application_credentials,
        )

    @property
    def configured(self) -> bool:
        return bool(self.spreadsheet_id and self.credentials_path)

    def _client(self):
        credentials = Credentials.from_service_account_file(
            str(resolve_repo_path(self.credentials_path)), scopes=SCOPES
        )
        return build("sheets", "v4", credentials=credentials, cache_discovery=False)

    def _ensure_sheet(self, service) -> None:
        values = service.spreadsheets().values()
        try:
            existing = values.get(spreadsheetId=self.spreadsheet_id, range=f"{self.sheet_name}!A1:AZ1").execute()
        except HttpError:
            service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": self.sheet_name}}}]},
            ).execute()
            existing = {}
        if existing.get("values"):
            return
        values.update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.sheet_name}!A1",
            valueInputOption="USER_ENTERED",
            body={"values": [HEADERS]},
        ).execute()

    def append(self, payload: Mapping[str, Any], *, processing_ms: int | None = None) -> SheetAppendResult:
        submission_id = text_of(payload.get("submissionId"))
        try:
            if not self.configured:
                raise SpreadsheetError("Google Sheets is not configured")
            service = self._client()
            self._ensure_sheet(service)
            response = (
                service.spreadsheets()
                .values()
                .append(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"{self.sheet_name}!A:AZ",
                    valueInputOption="USER_ENTERED",
                    insertDataOption="INSERT_ROWS",
                    body={"values": [build_row(payload, processing_ms=processing_ms)]},
                )
                .execute()
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "sheet_append_failed",
                extra={"sheet": self.sheet_name, "submission_id": submission_id, "error": str(exc)},
            )
            return SheetAppendResult(success=False, sheet=self.sheet_name, error=str(exc))

        updated_range = (response.get("updates") or {}).get("updatedRange")
        logger.info("sheet_row_appended", extra={"sheet": self.sheet_name, "submission_id": submission_id})
        return SheetAppendResult(success=True, sheet=self.sheet_name, updated_range=updated_range)
