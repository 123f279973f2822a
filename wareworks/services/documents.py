from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import google.auth
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from wareworks.core.config import Settings
from wareworks.core.errors import StorageError
from wareworks.core.paths import resolve_repo_path
from wareworks.core.store import ExpiringStore
from wareworks.core.uploads import is_safe_key
from wareworks.services.pdf_filler import GeneratedDocument

logger = logging.getLogger("ww.storage")


@dataclass(frozen=True)
class StoredDocument:
    key: str
    url: str
    size: int
    content_type: str


class DocumentStore(Protocol):
    name: str

    def save(self, key: str, *, filename: str, content_type: str, data: bytes) -> StoredDocument: ...


class LocalDocumentStore:
    """Writes uploads under a local directory; keys carry a timestamp so each upload gets its own file."""

    name = "local"

    def __init__(self, root: Path) -> None:
        self.root = root

    def save(self, key: str, *, filename: str, content_type: str, data: bytes) -> StoredDocument:
        if not is_safe_key(key):
            raise StorageError(f"Invalid storage key: {key}")
        target = self.root / key
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Could not write {key}: {exc}") from exc
        logger.info("document_saved", extra={"key": key, "original_name": filename, "size": len(data)})
        return StoredDocument(key=key, url=target.resolve().as_uri(), size=len(data), content_type=content_type)


class DriveDocumentStore:
    name = "drive"

    def __init__(self, *, folder_id: str, credentials_path: str) -> None:
        self.folder_id = folder_id
        self.credentials_path = credentials_path

    def _client(self):
        scopes = ["https://www.googleapis.com/auth/drive"]
        if self.credentials_path:
            credentials = Credentials.from_service_account_file(
                str(resolve_repo_path(self.credentials_path)), scopes=scopes
            )
        else:
            credentials, _ = google.auth.default(scopes=scopes)
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    def save(self, key: str, *, filename: str, content_type: str, data: bytes) -> StoredDocument:
        if not is_safe_key(key):
            raise StorageError(f"Invalid storage key: {key}")
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=content_type or "application/octet-stream", resumable=False)
        file_metadata = {
            "name": key.rsplit("/", 1)[-1],
            "parents": [self.folder_id],
            "description": filename,
        }
        try:
            created = (
                self._client()
                .files()
                .create(body=file_metadata, media_body=media, fields="id", supportsAllDrives=True)
                .execute()
            )
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Drive upload failed: {exc}") from exc
        file_id = created["id"]
        return StoredDocument(
            key=key,
            url=f"https://drive.google.com/file/d/{file_id}/view",
            size=len(data),
            content_type=content_type,
        )


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.drive_uploads_folder_id:
        return DriveDocumentStore(
            folder_id=settings.drive_uploads_folder_id,
            credentials_path=settings.google_application_credentials,
        )
    return LocalDocumentStore(resolve_repo_path(settings.local_uploads_dir))


@dataclass(frozen=True)
class RetainedDocument:
    document: GeneratedDocument
    stored_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class DocumentArchive:
    """Keeps generated application PDFs in memory so the applicant can download them."""

    def __init__(self, store: ExpiringStore[RetainedDocument], *, retention_seconds: float) -> None:
        self.store = store
        self.retention_seconds = retention_seconds

    def put(self, submission_id: str, document: GeneratedDocument) -> None:
        now = self.store.clock()
        self.store.put(
            submission_id,
            RetainedDocument(document=document, stored_at=now, expires_at=now + self.retention_seconds),
        )

    def get(self, submission_id: str) -> GeneratedDocument | None:
        retained = self.store.get(submission_id)
        if retained is None:
            return None
        if retained.expired(self.store.clock()):
            self.store.delete(submission_id)
            return None
        return retained.document

    def sweep(self) -> int:
        removed = self.store.sweep(lambda retained, now: retained.expired(now))
        if removed:
            logger.info("retained_documents_swept", extra={"removed": removed})
        return removed
