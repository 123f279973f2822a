from __future__ import annotations

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from wareworks.core.config import Settings
from wareworks.core.errors import BindingDriftError, TemplateError
from wareworks.core.paths import resolve_repo_path
from wareworks.core.uploads import IMAGE_MIME_TYPES, normalize_content_type, sanitize_filename
from wareworks.services.pdf_fields import (
    APPLICATION_BINDINGS,
    CHECKBOX,
    EDUCATION_SLOTS,
    EMPLOYMENT_SLOTS,
    I9_BINDINGS,
    FieldBinding,
    alien_documents,
    entries,
    mask_ssn,
    normalize_citizenship,
    text_of,
)

logger = logging.getLogger("ww.pdf")

APPLICATION = "application"
I9 = "i9"

SOURCE_TEMPLATE = "template"
SOURCE_SYNTHESIZED = "synthesized"
PDF_MIME_TYPE = "application/pdf"

CITIZENSHIP_LABELS = {
    "us_citizen": "A citizen of the United States",
    "noncitizen_national": "A noncitizen national of the United States",
    "lawful_permanent": "A lawful permanent resident",
    "alien_authorized": "A noncitizen authorized to work",
}

MARGIN = 50
LINE_HEIGHT = 14


@dataclass(frozen=True)
class PdfTemplate:
    name: str
    path: Path
    title: str
    filename_prefix: str
    bindings: tuple[FieldBinding, ...]
    education_slots: int = 0
    employment_slots: int = 0


@dataclass(frozen=True)
class GeneratedDocument:
    content: bytes
    filename: str
    mime_type: str = PDF_MIME_TYPE
    source: str = SOURCE_TEMPLATE

    @property
    def size(self) -> int:
        return len(self.content)


def document_filename(prefix: str, payload: Mapping[str, Any]) -> str:
    first = text_of(payload.get("legalFirstName")) or "Applicant"
    last = text_of(payload.get("legalLastName")) or "Unknown"
    submission_id = text_of(payload.get("submissionId")) or "draft"
    return sanitize_filename(f"{prefix}-{first}-{last}-{submission_id}.pdf", default=f"{prefix}.pdf")


class _PageWriter:
    """Top-to-bottom text layout on letter pages with automatic page breaks."""

    def __init__(self, title: str, subject: str = "") -> None:
        self.buffer = io.BytesIO()
        self.canvas = canvas.Canvas(self.buffer, pagesize=LETTER)
        self.canvas.setTitle(title)
        if subject:
            self.canvas.setSubject(subject)
        self.width, self.height = LETTER
        self.y = self.height - MARGIN

    def _ensure_room(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.canvas.showPage()
            self.y = self.height - MARGIN

    def title(self, text: str) -> None:
        self._ensure_room(30)
        self.canvas.setFont("Helvetica-Bold", 16)
        self.canvas.drawCentredString(self.width / 2, self.y, text)
        self.y -= 30

    def heading(self, text: str) -> None:
        self._ensure_room(LINE_HEIGHT * 3)
        self.y -= 6
        self.canvas.setFont("Helvetica-Bold", 12)
        self.canvas.drawString(MARGIN, self.y, text)
        self.y -= LINE_HEIGHT + 4

    def paragraph(self, text: str, *, size: int = 10, font: str = "Helvetica") -> None:
        lines = simpleSplit(text, font, size, self.width - 2 * MARGIN) or [""]
        for line in lines:
            self._ensure_room(LINE_HEIGHT)
            self.canvas.setFont(font, size)
            self.canvas.drawString(MARGIN, self.y, line)
            self.y -= LINE_HEIGHT

    def field(self, label: str, value: Any) -> None:
        shown = text_of(value)
        if shown:
            self.paragraph(f"{label}: {shown}")

    def finish(self) -> bytes:
        self.canvas.showPage()
        self.canvas.save()
        return self.buffer.getvalue()


def _full_name(payload: Mapping[str, Any]) -> str:
    parts = (payload.get("legalFirstName"), payload.get("middleInitial"), payload.get("legalLastName"))
    return " ".join(text_of(part) for part in parts if text_of(part))


def _address(payload: Mapping[str, Any]) -> str:
    street = text_of(payload.get("streetAddress"))
    apt = text_of(payload.get("aptNumber"))
    city = text_of(payload.get("city"))
    state = text_of(payload.get("state"))
    zip_code = text_of(payload.get("zipCode"))
    line = f"{street} {apt}".strip()
    return ", ".join(part for part in (line, city, f"{state} {zip_code}".strip()) if part)


def _write_education(page: _PageWriter, items: list[Mapping[str, Any]], *, start: int = 1) -> None:
    for number, item in enumerate(items, start=start):
        page.paragraph(f"{number}. {text_of(item.get('schoolName')) or 'School not provided'}", font="Helvetica-Bold")
        page.field("Graduation year", item.get("graduationYear"))
        page.field("Field of study", item.get("fieldOfStudy"))
        page.field("Diploma/degree received", item.get("degreeReceived"))


def _write_employment(page: _PageWriter, items: list[Mapping[str, Any]], *, start: int = 1) -> None:
    for number, item in enumerate(items, start=start):
        page.paragraph(f"{number}. {text_of(item.get('companyName')) or 'Employer not provided'}", font="Helvetica-Bold")
        dates = " to ".join(d for d in (text_of(item.get("startDate")), text_of(item.get("endDate"))) if d)
        page.field("Dates", dates)
        page.field("Starting position", item.get("startingPosition"))
        page.field("Ending position", item.get("endingPosition"))
        page.field("Supervisor", item.get("supervisorName"))
        page.field("Telephone", item.get("supervisorPhone"))
        page.field("May we contact", item.get("mayContact"))
        responsibilities = " ".join(
            text_of(item.get(key)) for key in ("responsibilities", "responsibilitiesContinued") if text_of(item.get(key))
        )
        page.field("Responsibilities", responsibilities)
        reason = " ".join(
            text_of(item.get(key)) for key in ("reasonForLeaving", "reasonLeavingContinued") if text_of(item.get(key))
        )
        page.field("Reason for leaving", reason)


class PDFFiller:
    """
    Fills the application and I-9 templates from a submission payload.

    A template that is missing, unparsable or has no form fields never fails the
    caller: a plain document with the same information is drawn instead.
    """

    def __init__(self, templates: Mapping[str, PdfTemplate], *, company_name: str = "WareWorks") -> None:
        self.templates = dict(templates)
        self.company_name = company_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "PDFFiller":
        base = resolve_repo_path(settings.templates_dir)
        return cls(
            {
                APPLICATION: PdfTemplate(
                    name=APPLICATION,
                    path=base / settings.application_template,
                    title="WAREWORKS APPLICATION FOR EMPLOYMENT",
                    filename_prefix="WareWorks-Application",
                    bindings=APPLICATION_BINDINGS,
                    education_slots=EDUCATION_SLOTS,
                    employment_slots=EMPLOYMENT_SLOTS,
                ),
                I9: PdfTemplate(
                    name=I9,
                    path=base / settings.i9_template,
                    title="FORM I-9 EMPLOYMENT ELIGIBILITY VERIFICATION",
                    filename_prefix="WareWorks-I9",
                    bindings=I9_BINDINGS,
                ),
            },
            company_name=settings.company_name,
        )

    def template(self, name: str) -> PdfTemplate:
        try:
            return self.templates[name]
        except KeyError:
            raise ValueError(f"Unknown PDF template: {name}") from None

    def fill(self, template_name: str, payload: Mapping[str, Any]) -> GeneratedDocument:
        template = self.template(template_name)
        submission_id = text_of(payload.get("submissionId"))
        try:
            writer = self._fill_template(template, payload)
            source = SOURCE_TEMPLATE
        except TemplateError as exc:
            logger.warning(
                "pdf_template_unusable",
                extra={"template": template.name, "reason": exc.reason, "submission_id": submission_id},
            )
            writer = PdfWriter(clone_from=PdfReader(io.BytesIO(self.synthesize(template, payload))))
            source = SOURCE_SYNTHESIZED
        except Exception:  # noqa: BLE001
            logger.exception("pdf_fill_failed", extra={"template": template.name, "submission_id": submission_id})
            writer = PdfWriter(clone_from=PdfReader(io.BytesIO(self.synthesize(template, payload))))
            source = SOURCE_SYNTHESIZED

        if template.name == APPLICATION:
            self._append_documents(writer, payload)

        writer.add_metadata(
            {
                "/Title": f"{template.title} {submission_id}".strip(),
                "/Author": self.company_name,
                "/Subject": submission_id,
            }
        )
        buffer = io.BytesIO()
        writer.write(buffer)
        document = GeneratedDocument(
            content=buffer.getvalue(),
            filename=document_filename(template.filename_prefix, payload),
            source=source,
        )
        logger.info(
            "pdf_generated",
            extra={
                "template": template.name,
                "source": source,
                "size": document.size,
                "submission_id": submission_id,
            },
        )
        return document

    def _load(self, template: PdfTemplate) -> tuple[PdfReader, dict[str, Any]]:
        if not template.path.is_file():
            raise TemplateError(template.name, f"template not found at {template.path}")
        try:
            reader = PdfReader(str(template.path))
            fields = reader.get_fields()
        except (OSError, PyPdfError, ValueError, KeyError) as exc:
            raise TemplateError(template.name, f"template could not be parsed: {exc}") from exc
        if not fields:
            raise TemplateError(template.name, "template has no form fields")
        return reader, fields

    def _field_values(self, template: PdfTemplate, fields: dict[str, Any], payload: Mapping[str, Any]) -> dict[str, str]:
        values: dict[str, str] = {}
        for binding in template.bindings:
            name = next((candidate for candidate in binding.candidates if candidate in fields), None)
            if name is None or name in values:
                continue
            value = binding.value(payload)
            if binding.writer == CHECKBOX:
                values[name] = _on_state(fields[name]) if value else "/Off"
            else:
                values[name] = str(value)
        return values

    def _fill_template(self, template: PdfTemplate, payload: Mapping[str, Any]) -> PdfWriter:
        reader, fields = self._load(template)
        values = self._field_values(template, fields, payload)
        writer = PdfWriter(clone_from=reader)
        for page in writer.pages:
            writer.update_page_form_field_values(page, values, auto_regenerate=False)
        writer.set_need_appearances_writer(True)

        overflow = self._overflow_pages(template, payload)
        if overflow:
            for page in PdfReader(io.BytesIO(overflow)).pages:
                writer.add_page(page)
        return writer

    def check_bindings(self, template_name: str) -> list[str]:
        """Returns the bound field names the template does not provide."""
        template = self.template(template_name)
        _, fields = self._load(template)
        return [
            binding.template_field
            for binding in template.bindings
            if binding.required and not any(candidate in fields for candidate in binding.candidates)
        ]

    def verify_templates(self, *, strict: bool) -> dict[str, list[str]]:
        drift: dict[str, list[str]] = {}
        for name in self.templates:
            try:
                missing = self.check_bindings(name)
            except TemplateError as exc:
                logger.warning("pdf_template_unusable", extra={"template": name, "reason": exc.reason})
                continue
            drift[name] = missing
            if not missing:
                continue
            if strict:
                raise BindingDriftError(name, missing)
            logger.warning("pdf_binding_drift", extra={"template": name, "missing_fields": missing})
        return drift

    def _overflow_pages(self, template: PdfTemplate, payload: Mapping[str, Any]) -> bytes | None:
        education = entries(payload, "education")[template.education_slots :] if template.education_slots else []
        employment = entries(payload, "employment")[template.employment_slots :] if template.employment_slots else []
        if not education and not employment:
            return None
        page = _PageWriter("Additional History", text_of(payload.get("submissionId")))
        page.title("ADDITIONAL HISTORY")
        page.field("Applicant", _full_name(payload))
        page.field("Submission ID", payload.get("submissionId"))
        if education:
            page.heading("Education (continued)")
            _write_education(page, education, start=template.education_slots + 1)
        if employment:
            page.heading("Employment History (continued)")
            _write_employment(page, employment, start=template.employment_slots + 1)
        return page.finish()

    def synthesize(self, template: PdfTemplate, payload: Mapping[str, Any]) -> bytes:
        if template.name == I9:
            return self._synthesize_i9(template, payload)
        return self._synthesize_application(template, payload)

    def _header(self, page: _PageWriter, template: PdfTemplate, payload: Mapping[str, Any]) -> None:
        page.title(template.title)
        page.field("Submission ID", payload.get("submissionId"))
        page.field("Submitted", payload.get("serverTimestamp"))

    def _synthesize_application(self, template: PdfTemplate, payload: Mapping[str, Any]) -> bytes:
        page = _PageWriter(template.title, text_of(payload.get("submissionId")))
        self._header(page, template, payload)

        page.heading("Personal Information")
        page.field("Name", _full_name(payload))
        page.field("Other last names", payload.get("otherLastNames"))
        page.field("Date of birth", payload.get("dateOfBirth"))
        page.field("Social Security Number", mask_ssn(payload.get("socialSecurityNumber")))
        page.field("Address", _address(payload))
        page.field("Phone", payload.get("phoneNumber"))
        page.field("Home phone", payload.get("homePhone"))
        page.field("Cell phone", payload.get("cellPhone"))
        page.field("Email", payload.get("email"))

        page.heading("Emergency Contact")
        page.field("Name", payload.get("emergencyName"))
        page.field("Phone", payload.get("emergencyPhone"))
        page.field("Relationship", payload.get("emergencyRelationship"))

        page.heading("Position")
        page.field("Position applied for", payload.get("positionApplied") or "General Position")
        page.field("Expected salary", payload.get("expectedSalary"))
        page.field("How the applicant found the job", payload.get("jobDiscovery"))
        for key, label in (
            ("age18", "18 or older"),
            ("transportation", "Reliable transportation"),
            ("workAuthorized", "Authorized to work"),
            ("fullTimeEmployment", "Full-time employment"),
            ("swingShifts", "Swing shifts"),
            ("graveyardShifts", "Graveyard shifts"),
            ("previouslyApplied", "Previously applied"),
            ("forkliftCertification", "Forklift certification"),
        ):
            page.field(label, payload.get(key))

        equipment = [
            f"{label}: {text_of(payload.get(key))}"
            for key, label in (
                ("equipmentSD", "Sit Down"),
                ("equipmentSU", "Stand Up"),
                ("equipmentSUR", "Stand Up Reach"),
                ("equipmentCP", "Cherry Picker"),
                ("equipmentCL", "Clamps"),
                ("equipmentRidingJack", "Riding Jack"),
            )
            if text_of(payload.get(key))
        ]
        if equipment:
            page.heading("Equipment Experience")
            for line in equipment:
                page.paragraph(line)

        skills = [text_of(payload.get(f"skills{n}")) for n in (1, 2, 3) if text_of(payload.get(f"skills{n}"))]
        if skills:
            page.heading("Skills and Qualifications")
            for skill in skills:
                page.paragraph(f"- {skill}")

        page.heading("Weekly Availability")
        for day in ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"):
            page.field(day, payload.get(f"availability{day}") or "-")

        education = entries(payload, "education")
        if education:
            page.heading("Education")
            _write_education(page, education)
        employment = entries(payload, "employment")
        if employment:
            page.heading("Employment History")
            _write_employment(page, employment)

        page.heading("Notes")
        page.paragraph("I-9 employment eligibility verification requires a signature completed in person.")
        page.paragraph(f"Generated by the {self.company_name} application system.", size=8)
        return page.finish()

    def _synthesize_i9(self, template: PdfTemplate, payload: Mapping[str, Any]) -> bytes:
        page = _PageWriter(template.title, text_of(payload.get("submissionId")))
        self._header(page, template, payload)

        page.heading("Section 1. Employee Information and Attestation")
        page.field("Last name", payload.get("legalLastName"))
        page.field("First name", payload.get("legalFirstName"))
        page.field("Middle initial", payload.get("middleInitial"))
        page.field("Other last names used", payload.get("otherLastNames"))
        page.field("Address", _address(payload))
        page.field("Date of birth", payload.get("dateOfBirth"))
        page.field("U.S. Social Security Number", mask_ssn(payload.get("socialSecurityNumber")))
        page.field("Email", payload.get("email"))
        page.field("Telephone", payload.get("phoneNumber"))

        status = normalize_citizenship(payload.get("citizenshipStatus"))
        page.heading("Citizenship / Immigration Status")
        page.field("Status", CITIZENSHIP_LABELS.get(status or "", text_of(payload.get("citizenshipStatus"))))
        if status == "lawful_permanent":
            page.field("USCIS A-Number", payload.get("uscisANumber"))
        if status == "alien_authorized":
            a_number, i94, passport = alien_documents(payload)
            page.field(
                "Authorization expires",
                payload.get("workAuthorizationExpiration") or payload.get("workAuthExpiration"),
            )
            page.field("USCIS A-Number", a_number)
            page.field("Form I-94 admission number", i94)
            page.field("Foreign passport and country", passport)

        page.heading("Signature")
        page.paragraph("The employee must sign and date Section 1 in person on the first day of employment.")
        return page.finish()

    def confirmation(self, submission_id: str) -> GeneratedDocument:
        """Plain receipt served when no generated application is retained."""
        page = _PageWriter("WareWorks Application Confirmation", submission_id)
        page.title("WAREWORKS APPLICATION FOR EMPLOYMENT")
        page.heading("Application Received")
        page.field("Submission ID", submission_id)
        page.field("Generated", datetime.now(timezone.utc).isoformat())
        page.paragraph(
            "Your application has been received and is being reviewed. "
            "Our hiring team will contact you within 5-7 business days."
        )
        page.paragraph("Please keep this confirmation for your records.")
        return GeneratedDocument(
            content=page.finish(),
            filename=sanitize_filename(f"Wareworks_Application_{submission_id}.pdf"),
            source=SOURCE_SYNTHESIZED,
        )

    def _append_documents(self, writer: PdfWriter, payload: Mapping[str, Any]) -> None:
        """Adds uploaded PDF pages and images that were sent inline with the submission."""
        for doc in entries(payload, "documents"):
            data = text_of(doc.get("data"))
            if not data:
                continue
            name = text_of(doc.get("name")) or "document"
            if data.startswith("data:") and "," in data:
                data = data.split(",", 1)[1]
            mime_type = normalize_content_type(doc.get("mimeType"))
            try:
                raw = base64.b64decode(data)
                if mime_type == PDF_MIME_TYPE:
                    for page in PdfReader(io.BytesIO(raw)).pages:
                        writer.add_page(page)
                elif mime_type in IMAGE_MIME_TYPES:
                    writer.add_page(PdfReader(io.BytesIO(_image_page(name, raw))).pages[0])
            except (binascii.Error, OSError, ValueError, PyPdfError) as exc:
                logger.warning("document_merge_skipped", extra={"document": name, "error": str(exc)})


def _on_state(field: Mapping[str, Any]) -> str:
    states = field.get("/_States_") or []
    for state in states:
        if str(state) != "/Off":
            return str(state)
    return "/Yes"


def _image_page(name: str, raw: bytes) -> bytes:
    image = ImageReader(io.BytesIO(raw))
    image_width, image_height = image.getSize()
    width, height = LETTER
    scale = min((width - 2 * MARGIN) / image_width, (height - 2 * MARGIN - 30) / image_height, 1.0)
    draw_width, draw_height = image_width * scale, image_height * scale

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=LETTER)
    pdf.setFont("Helvetica", 12)
    pdf.drawString(MARGIN, height - 30, f"Document: {name}")
    pdf.drawImage(image, (width - draw_width) / 2, (height - 30 - draw_height) / 2, draw_width, draw_height)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
