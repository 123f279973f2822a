from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from wareworks.core.config import Settings
from wareworks.core.uploads import DOC_MIME_TYPES, IMAGE_MIME_TYPES, normalize_content_type
from wareworks.services.pdf_fields import normalize_citizenship

US_STATES = frozenset(
    {
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
        "DC", "PR", "GU", "VI", "AS", "MP",
    }
)  # fmt: skip

REQUIRED_FIELDS = (
    "legalFirstName",
    "legalLastName",
    "streetAddress",
    "city",
    "state",
    "zipCode",
    "phoneNumber",
    "socialSecurityNumber",
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SSN_PATTERN = re.compile(r"^\d{3}-\d{2}-\d{4}$")
ZIP_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")
DEFAULT_PHONE_PATTERN = r"^(\(\d{3}\) |\d{3}-)\d{3}-\d{4}$"

DOCUMENT_MIME_TYPES = {
    "identification": IMAGE_MIME_TYPES,
    "id": IMAGE_MIME_TYPES,
    "resume": DOC_MIME_TYPES,
    "certification": DOC_MIME_TYPES,
}

EDUCATION_FIELDS = ("schoolName", "graduationYear", "fieldOfStudy", "degreeReceived")
EMPLOYMENT_FIELDS = (
    "companyName",
    "startDate",
    "endDate",
    "startingPosition",
    "endingPosition",
    "supervisorName",
    "supervisorPhone",
    "responsibilities",
    "reasonForLeaving",
)


@dataclass(frozen=True)
class FormatRule:
    field: str
    pattern: re.Pattern[str]
    message: str


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _has_content(entry: Mapping[str, Any], fields: tuple[str, ...]) -> bool:
    return any(_text(entry.get(name)) for name in fields)


class SubmissionValidator:
    """
    Checks an application payload against the required-field and format tables.

    `validate` is pure: it never mutates the payload and performs no I/O. Every
    violation is collected so the applicant can fix them in one pass.
    """

    def __init__(
        self,
        *,
        phone_pattern: str = DEFAULT_PHONE_PATTERN,
        max_document_bytes: int = 10 * 1024 * 1024,
        max_payload_bytes: int = 50 * 1024 * 1024,
    ) -> None:
        self.phone_pattern = re.compile(phone_pattern)
        self.max_document_bytes = max_document_bytes
        self.max_payload_bytes = max_payload_bytes
        self.format_rules = (
            FormatRule("email", EMAIL_PATTERN, "Invalid email format"),
            FormatRule("socialSecurityNumber", SSN_PATTERN, "Invalid Social Security Number format (use XXX-XX-XXXX)"),
            FormatRule("phoneNumber", self.phone_pattern, "Invalid phone number format"),
            FormatRule("homePhone", self.phone_pattern, "Invalid home phone number format"),
            FormatRule("cellPhone", self.phone_pattern, "Invalid cell phone number format"),
            FormatRule("emergencyPhone", self.phone_pattern, "Invalid emergency contact phone number format"),
            FormatRule("zipCode", ZIP_PATTERN, "Invalid ZIP code format (use 12345 or 12345-6789)"),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SubmissionValidator":
        return cls(
            phone_pattern=settings.phone_pattern,
            max_document_bytes=settings.max_document_bytes,
            max_payload_bytes=settings.max_payload_bytes,
        )

    def validate(self, payload: Mapping[str, Any]) -> ValidationResult:
        errors: list[str] = []

        for name in REQUIRED_FIELDS:
            if not _text(payload.get(name)):
                errors.append(f"{name} is required")

        for rule in self.format_rules:
            value = _text(payload.get(rule.field))
            if value and not rule.pattern.match(value):
                errors.append(rule.message)

        state = _text(payload.get("state")).upper()
        if state and state not in US_STATES:
            errors.append("Please select a valid state")

        if len(_text(payload.get("middleInitial"))) > 1:
            errors.append("Middle initial must be a single character")

        status = _text(payload.get("citizenshipStatus"))
        if status and normalize_citizenship(status) is None:
            errors.append("Invalid citizenship status")

        errors.extend(self._education_errors(payload.get("education")))
        errors.extend(self._employment_errors(payload.get("employment")))
        errors.extend(self._document_errors(payload.get("documents")))

        try:
            size = len(json.dumps(dict(payload), default=str))
        except (TypeError, ValueError):
            errors.append("Submission payload could not be serialized")
        else:
            if size > self.max_payload_bytes:
                errors.append("Total submission size is too large")

        return ValidationResult(is_valid=not errors, errors=errors)

    def _education_errors(self, entries: Any) -> list[str]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            return ["Education history must be a list"]
        errors = []
        for index, entry in enumerate(entries, start=1):
            if not isinstance(entry, Mapping):
                errors.append(f"Education entry {index}: invalid entry")
                continue
            if _has_content(entry, EDUCATION_FIELDS) and not _text(entry.get("schoolName")):
                errors.append(f"Education entry {index}: School name is required")
        return errors

    def _employment_errors(self, entries: Any) -> list[str]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            return ["Employment history must be a list"]
        errors = []
        for index, entry in enumerate(entries, start=1):
            if not isinstance(entry, Mapping):
                errors.append(f"Employment entry {index}: invalid entry")
                continue
            if _has_content(entry, EMPLOYMENT_FIELDS) and not _text(entry.get("companyName")):
                errors.append(f"Employment entry {index}: Company name is required")
            phone = _text(entry.get("supervisorPhone"))
            if phone and not self.phone_pattern.match(phone):
                errors.append(f"Employment entry {index}: Invalid supervisor phone number format")
        return errors

    def _document_errors(self, documents: Any) -> list[str]:
        if documents is None:
            return []
        if not isinstance(documents, list):
            return ["Documents must be a list"]
        errors = []
        for index, doc in enumerate(documents, start=1):
            if not isinstance(doc, Mapping):
                errors.append(f"Document {index}: invalid entry")
                continue
            name = _text(doc.get("name")) or f"Document {index}"
            if not _text(doc.get("name")):
                errors.append(f"Document {index}: File name is required")
            category = _text(doc.get("type")) or _text(doc.get("category")) or "certification"
            allowed = DOCUMENT_MIME_TYPES.get(category, DOC_MIME_TYPES)
            mime_type = normalize_content_type(doc.get("mimeType"))
            if mime_type not in allowed:
                errors.append(f"{name}: Unsupported file type")
            size = doc.get("size")
            if size is not None:
                if not isinstance(size, (int, float)) or isinstance(size, bool) or size < 0:
                    errors.append(f"{name}: Invalid file size")
                elif size > self.max_document_bytes:
                    errors.append(f"{name}: File is larger than {self.max_document_bytes // (1024 * 1024)}MB")
        return errors
