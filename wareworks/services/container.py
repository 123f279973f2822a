from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from wareworks.core.config import Settings
from wareworks.core.store import ExpiringStore
from wareworks.middleware.csrf import CSRFConfig, CSRFGuard, CSRFTokenRecord
from wareworks.middleware.rate_limit import (
    SUBMISSION,
    RateLimiter,
    RateLimitEntry,
    build_rate_limiters,
    sweep_rate_limits,
)
from wareworks.services.documents import DocumentArchive, DocumentStore, RetainedDocument, build_document_store
from wareworks.services.notifications import NotificationDispatcher
from wareworks.services.pdf_filler import PDFFiller
from wareworks.services.sheets import SpreadsheetRecorder
from wareworks.services.submissions import SubmissionOrchestrator
from wareworks.services.validation import SubmissionValidator

logger = logging.getLogger("ww.jobs")


@dataclass
class Services:
    settings: Settings
    rate_store: ExpiringStore[RateLimitEntry]
    limiters: dict[str, RateLimiter]
    csrf: CSRFGuard
    validator: SubmissionValidator
    pdf_filler: PDFFiller
    dispatcher: NotificationDispatcher
    sheets: SpreadsheetRecorder
    documents: DocumentStore
    archive: DocumentArchive
    orchestrator: SubmissionOrchestrator

    def limiter(self, name: str) -> RateLimiter:
        return self.limiters[name]

    def sweep_rate_limits(self) -> int:
        removed = sweep_rate_limits(self.rate_store)
        if removed:
            logger.info("rate_limits_swept", extra={"removed": removed})
        return removed

    def sweep_csrf_tokens(self) -> int:
        removed = self.csrf.sweep()
        if removed:
            logger.info("csrf_tokens_swept", extra={"removed": removed})
        return removed

    def sweep_retained_documents(self) -> int:
        return self.archive.sweep()


def build_services(
    settings: Settings,
    *,
    clock: Callable[[], float] = time.time,
    dispatcher: NotificationDispatcher | None = None,
    sheets: SpreadsheetRecorder | None = None,
    documents: DocumentStore | None = None,
) -> Services:
    """Wires every component from settings. Tests pass fakes for the outbound services."""
    rate_store: ExpiringStore[RateLimitEntry] = ExpiringStore("rate_limits", clock=clock)
    csrf_store: ExpiringStore[CSRFTokenRecord] = ExpiringStore("csrf_tokens", clock=clock)
    retained: ExpiringStore[RetainedDocument] = ExpiringStore("retained_documents", clock=clock)

    limiters = build_rate_limiters(settings, store=rate_store)
    csrf = CSRFGuard(CSRFConfig.from_settings(settings), store=csrf_store)
    validator = SubmissionValidator.from_settings(settings)
    pdf_filler = PDFFiller.from_settings(settings)
    dispatcher = dispatcher or NotificationDispatcher.from_settings(settings)
    sheets = sheets or SpreadsheetRecorder.from_settings(settings)
    documents = documents or build_document_store(settings)
    archive = DocumentArchive(retained, retention_seconds=settings.data_retention_hours * 3600)

    orchestrator = SubmissionOrchestrator(
        settings=settings,
        limiter=limiters[SUBMISSION],
        csrf=csrf,
        validator=validator,
        pdf_filler=pdf_filler,
        dispatcher=dispatcher,
        sheets=sheets,
        archive=archive,
        clock=clock,
    )
    return Services(
        settings=settings,
        rate_store=rate_store,
        limiters=limiters,
        csrf=csrf,
        validator=validator,
        pdf_filler=pdf_filler,
        dispatcher=dispatcher,
        sheets=sheets,
        documents=documents,
        archive=archive,
        orchestrator=orchestrator,
    )
