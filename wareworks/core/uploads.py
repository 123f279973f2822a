from __future__ import annotations

import re
from pathlib import Path

from fastapi import HTTPException, UploadFile, status

MAX_FILENAME_LENGTH = 150
OCTET_STREAM_MIME_TYPES = {"application/octet-stream", "binary/octet-stream"}

IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png"}
IMAGE_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png"}

DOC_EXTENSIONS = IMAGE_EXTENSIONS | {".doc", ".docx", ".pdf"}
DOC_MIME_TYPES = IMAGE_MIME_TYPES | {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

CATEGORY_RULES: dict[str, tuple[set[str], set[str], str]] = {
    "id": (
        IMAGE_EXTENSIONS,
        IMAGE_MIME_TYPES,
        "Only JPEG, JPG, or PNG image files are allowed for ID documents",
    ),
    "resume": (
        DOC_EXTENSIONS,
        DOC_MIME_TYPES,
        "Only PDF, DOC, DOCX, JPEG, JPG, or PNG files are allowed for resumes",
    ),
    "certification": (
        DOC_EXTENSIONS,
        DOC_MIME_TYPES,
        "Only PDF, DOC, DOCX, JPEG, JPG, or PNG files are allowed for certifications",
    ),
}
DEFAULT_CATEGORY = "id"

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def category_rules(category: str | None) -> tuple[set[str], set[str], str]:
    """Unknown categories get the ID document rules."""
    return CATEGORY_RULES.get((category or "").strip().lower(), CATEGORY_RULES[DEFAULT_CATEGORY])


def normalize_content_type(raw: str | None) -> str:
    content_type = (raw or "").strip().lower()
    if ";" in content_type:
        content_type = content_type.split(";", 1)[0].strip()
    return content_type


def sanitize_filename(raw: str | None, *, default: str = "file") -> str:
    name = (raw or "").strip() or default
    name = name.replace("/", "_").replace("\\", "_")
    name = _SAFE_NAME_RE.sub("_", name).strip("._") or default

    if len(name) > MAX_FILENAME_LENGTH:
        base, ext = _split_name_ext(name)
        keep = max(1, MAX_FILENAME_LENGTH - len(ext))
        name = f"{base[:keep]}{ext}"
    return name


def is_safe_key(key: str) -> bool:
    return bool(key) and ".." not in key and "//" not in key and not key.startswith("/")


def validate_upload(upload: UploadFile, *, category: str | None) -> str:
    allowed_extensions, allowed_types, message = category_rules(category)
    filename = sanitize_filename(upload.filename)
    ext = Path(filename).suffix.lower()
    if ext and ext not in allowed_extensions:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)

    content_type = normalize_content_type(upload.content_type)
    if content_type and content_type not in allowed_types and content_type not in OCTET_STREAM_MIME_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
    return filename


def _split_name_ext(name: str) -> tuple[str, str]:
    ext = Path(name).suffix
    if ext:
        return name[: -len(ext)], ext
    return name, ""
