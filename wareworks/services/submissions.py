from __future__ import annotations

import hashlib
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Mapping

import anyio
from fastapi import Request, status
from fastapi.responses import JSONResponse

from wareworks.core.config import Settings
from wareworks.middleware.csrf import CSRFGuard
from wareworks.middleware.rate_limit import RateLimiter, client_ip
from wareworks.middleware.request_context import get_request_context
from wareworks.services.documents import DocumentArchive
from wareworks.services.notifications import NotificationDispatcher
from wareworks.services.pdf_filler import APPLICATION, I9, GeneratedDocument, PDFFiller
from wareworks.services.pdf_fields import requires_i9
from wareworks.services.sheets import SpreadsheetRecorder
from wareworks.services.validation import SubmissionValidator

logger = logging.getLogger("ww.submission")

SUBMISSION_ID_PREFIX = "WW"
SUBMISSION_ID_RE = re.compile(r"WW_[0-9]{13}_[0-9a-f]{8}")

STEP_PDF = "pdfGeneration"
STEP_I9 = "i9Generation"
STEP_SHEETS = "googleSheets"
STEP_EMAIL = "emailNotifications"


def generate_submission_id(now: float) -> str:
    return f"{SUBMISSION_ID_PREFIX}_{int(now * 1000)}_{secrets.token_hex(4)}"


def is_submission_id(value: str) -> bool:
    return bool(SUBMISSION_ID_RE.fullmatch(value))


def iso_timestamp(now: float) -> str:
    return datetime.fromtimestamp(now, tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def security_fingerprint(request: Request) -> str:
    parts = (
        client_ip(request),
        request.headers.get("user-agent", ""),
        request.headers.get("accept-language", ""),
        request.headers.get("accept-encoding", ""),
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class SubmissionMetadata:
    submission_id: str
    server_timestamp: str
    ip_address: str
    user_agent: str
    referer: str
    security_fingerprint: str

    @classmethod
    def from_request(cls, request: Request, *, now: float) -> "SubmissionMetadata":
        return cls(
            submission_id=generate_submission_id(now),
            server_timestamp=iso_timestamp(now),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent") or "unknown",
            referer=request.headers.get("referer") or "direct",
            security_fingerprint=security_fingerprint(request),
        )

    def as_fields(self) -> dict[str, str]:
        return {
            "submissionId": self.submission_id,
            "serverTimestamp": self.server_timestamp,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "referer": self.referer,
            "securityFingerprint": self.security_fingerprint,
        }


def attach_metadata(data: Mapping[str, Any], metadata: SubmissionMetadata) -> Mapping[str, Any]:
    """Server metadata overrides anything the client sent under the same keys."""
    return MappingProxyType({**data, **metadata.as_fields()})


@dataclass(frozen=True)
class StepOutcome:
    step: str
    success: bool
    error: str | None = None
    skipped: bool = False
    detail: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, **self.detail}
        if self.skipped:
            data["skipped"] = True
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SubmissionOutcome:
    submission_id: str
    timestamp: str
    steps: list[StepOutcome] = field(default_factory=list)

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        return outcome

    def get(self, step: str) -> StepOutcome | None:
        return next((outcome for outcome in self.steps if outcome.step == step), None)

    @property
    def failed_steps(self) -> list[str]:
        return [outcome.step for outcome in self.steps if not outcome.success]

    def details(self) -> dict[str, dict[str, Any]]:
        return {outcome.step: outcome.as_dict() for outcome in self.steps}


class SubmissionOrchestrator:
    """
    Runs one application submission from the gates through to the response.

    Rate limit and CSRF failures short-circuit before the body is read. After
    validation the document, spreadsheet and email steps are best-effort: each
    one is recorded as a StepOutcome and none of them can fail the request.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        limiter: RateLimiter,
        csrf: CSRFGuard,
        validator: SubmissionValidator,
        pdf_filler: PDFFiller,
        dispatcher: NotificationDispatcher,
        sheets: SpreadsheetRecorder,
        archive: DocumentArchive,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.limiter = limiter
        self.csrf = csrf
        self.validator = validator
        self.pdf_filler = pdf_filler
        self.dispatcher = dispatcher
        self.sheets = sheets
        self.archive = archive
        self.clock = clock

    async def handle(self, request: Request) -> JSONResponse:
        self.limiter.enforce(request)
        self.csrf.enforce(request)
        try:
            return await self._accept(request)
        except Exception:  # noqa: BLE001
            context = get_request_context(request)
            self.limiter.release(context.ip)
            logger.exception(
                "submission_failed",
                extra={
                    "request_id": context.request_id,
                    "ip": context.ip,
                    "user_agent": context.user_agent,
                    "method": context.method,
                    "path": context.path,
                },
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "error": "Internal server error. Please try again later."},
            )

    async def _accept(self, request: Request) -> JSONResponse:
        try:
            data = await request.json()
        except ValueError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "error": "Invalid JSON in request body"},
            )
        if not isinstance(data, dict):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "error": "Request body must be a JSON object"},
            )

        metadata = SubmissionMetadata.from_request(request, now=self.clock())
        payload = attach_metadata(data, metadata)

        result = self.validator.validate(payload)
        if not result.is_valid:
            logger.info(
                "submission_rejected",
                extra={"submission_id": metadata.submission_id, "error_count": len(result.errors)},
            )
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "error": "Validation failed", "errors": result.errors},
            )

        outcome = await self.process(payload)
        return JSONResponse(status_code=status.HTTP_200_OK, content=self.response_body(outcome))

    async def process(self, payload: Mapping[str, Any]) -> SubmissionOutcome:
        """Runs the best-effort steps for an already validated payload."""
        started = time.perf_counter()
        outcome = SubmissionOutcome(
            submission_id=str(payload.get("submissionId", "")),
            timestamp=str(payload.get("serverTimestamp", "")),
        )

        application: GeneratedDocument | None = None
        extra_documents: list[GeneratedDocument] = []
        if self.settings.enable_pdf_generation:
            application = await self._generate(outcome, STEP_PDF, APPLICATION, payload)
            if application is not None:
                self.archive.put(outcome.submission_id, application)
            if requires_i9(payload):
                i9 = await self._generate(outcome, STEP_I9, I9, payload)
                if i9 is not None:
                    extra_documents.append(i9)
        else:
            outcome.record(StepOutcome(STEP_PDF, success=True, skipped=True))

        if self.settings.enable_google_sheets:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            appended = await anyio.to_thread.run_sync(partial(self.sheets.append, payload, processing_ms=elapsed_ms))
            outcome.record(
                StepOutcome(
                    STEP_SHEETS,
                    success=appended.success,
                    error=appended.error,
                    detail={"sheet": appended.sheet},
                )
            )
        else:
            outcome.record(StepOutcome(STEP_SHEETS, success=True, skipped=True))

        if self.settings.enable_email_notifications:
            sent = await anyio.to_thread.run_sync(
                partial(self.dispatcher.notify, payload, application, extra_documents=extra_documents)
            )
            outcome.record(
                StepOutcome(
                    STEP_EMAIL,
                    success=sent.success,
                    error=sent.error,
                    detail={"transport": sent.transport},
                )
            )
        else:
            outcome.record(StepOutcome(STEP_EMAIL, success=True, skipped=True))

        logger.info(
            "submission_processed",
            extra={
                "submission_id": outcome.submission_id,
                "failed_steps": outcome.failed_steps,
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return outcome

    async def _generate(
        self,
        outcome: SubmissionOutcome,
        step: str,
        template: str,
        payload: Mapping[str, Any],
    ) -> GeneratedDocument | None:
        try:
            document = await anyio.to_thread.run_sync(self.pdf_filler.fill, template, payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception("document_generation_failed", extra={"submission_id": outcome.submission_id, "step": step})
            outcome.record(StepOutcome(step, success=False, error=str(exc)))
            return None
        outcome.record(
            StepOutcome(
                step,
                success=True,
                detail={"size": document.size, "source": document.source, "filename": document.filename},
            )
        )
        return document

    def response_body(self, outcome: SubmissionOutcome) -> dict[str, Any]:
        email = outcome.get(STEP_EMAIL)
        return {
            "success": True,
            "submissionId": outcome.submission_id,
            "timestamp": outcome.timestamp,
            "message": "Application submitted successfully",
            "details": outcome.details(),
            "nextSteps": {
                "confirmationSent": bool(email and email.success and not email.skipped),
                "expectedResponse": "5-7 business days",
                "contactInfo": str(self.settings.hr_email),
            },
        }
