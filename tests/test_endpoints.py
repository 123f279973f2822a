from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import build_form_pdf, fetch_csrf
from wareworks.api.routes.config import is_allowed_origin
from wareworks.core.errors import BindingDriftError
from wareworks.middleware.csrf import ERROR_MISSING
from wareworks.services.pdf_filler import GeneratedDocument

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "environment": "test"}


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_csrf_token_endpoint(client, method):
    response = client.request(method, "/api/csrf-token")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert len(body["token"]) == 64
    assert body["tokenName"] == "csrfToken"
    assert body["headerName"] == "x-csrf-token"
    cookie = response.headers["set-cookie"]
    assert cookie.startswith("csrf-secret=")
    assert "HttpOnly" in cookie
    assert response.headers["X-RateLimit-Limit"] == "100"


def test_download_requires_submission_id(client):
    response = client.get("/api/download-application")
    assert response.status_code == 400
    assert response.json() == {"error": "Submission ID is required"}


def test_download_serves_retained_document(client, services):
    services.archive.put("WW_1700000000000_abcdef12", GeneratedDocument(content=b"%PDF-retained", filename="x.pdf"))

    response = client.get("/api/download-application", params={"submissionId": "WW_1700000000000_abcdef12"})

    assert response.status_code == 200
    assert response.content == b"%PDF-retained"
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="Wareworks_Application_WW_1700000000000_abcdef12.pdf"'
    assert response.headers["cache-control"] == "no-cache"


def test_download_falls_back_to_confirmation(client):
    response = client.get("/api/download-application", params={"submissionId": "WW_1700000000000_0badf00d"})
    assert response.status_code == 200
    assert response.content.startswith(b"%PDF")


def test_download_generation_failure(client, services, monkeypatch):
    def fail(_submission_id):
        raise RuntimeError("reportlab crashed")

    monkeypatch.setattr(services.pdf_filler, "confirmation", fail)
    response = client.get("/api/download-application", params={"submissionId": "WW_1700000000000_00c0ffee"})
    assert response.status_code == 500
    assert response.json() == {"error": "PDF generation failed. Please contact support."}


@pytest.mark.parametrize(
    "submission_id",
    ["WW_1_你", 'x"; filename="evil.exe', "WW_1700000000000_ABCDEF12", "WW_1700000000000_abcdef1"],
)
def test_download_rejects_malformed_submission_id(client, submission_id):
    response = client.get("/api/download-application", params={"submissionId": submission_id})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid submission ID"}
    assert "content-disposition" not in response.headers


def test_download_rate_limit(client):
    for _ in range(5):
        assert client.get("/api/download-application").status_code == 400
    response = client.get("/api/download-application")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"


def test_config_without_origin(client):
    response = client.get("/api/config")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-cache"
    body = response.json()
    assert body["version"] == "4.0.0"
    assert body["environment"] == "test"
    assert body["MAX_EDUCATION_ENTRIES"] == 5
    assert body["MAX_EMPLOYMENT_ENTRIES"] == 10
    assert body["DATA_RETENTION_HOURS"] == 24
    assert body["ENABLE_PDF_GENERATION"] is True
    assert body["ENABLE_GOOGLE_SHEETS"] is False
    assert body["SUPPORTED_LANGUAGES"] == ["en", "es"]
    assert body["ADMIN_EMAIL"] == "admin@wareworks.me"
    assert "lastUpdated" in body


def test_config_allowed_referer(client):
    response = client.get("/api/config", headers={"referer": "https://www.wareworks.me/apply"})
    assert response.status_code == 200


def test_config_rejects_foreign_origin(client):
    response = client.get("/api/config", headers={"referer": "https://evil.example/?ref=wareworks.me"})
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden", "message": "Access denied from this domain"}


@pytest.mark.parametrize(
    "value,allowed",
    [
        (None, True),
        ("", True),
        ("https://wareworks.me", True),
        ("https://jobs.wareworks.me/form", True),
        ("http://localhost:3000/", True),
        ("wareworks.webflow.io", True),
        ("https://notwareworks.me", False),
        ("https://wareworks.me.evil.com", False),
        ("https://evil.example/wareworks.me", False),
    ],
)
def test_is_allowed_origin(value, allowed):
    domains = ["wareworks.me", "www.wareworks.me", "wareworks.webflow.io", "localhost", "127.0.0.1"]
    assert is_allowed_origin(value, domains) is allowed


def upload(client, token: str | None, filename="license.png", content=PNG_BYTES, content_type="image/png", category="id"):
    headers = {"x-csrf-token": token} if token else {}
    return client.post(
        "/api/upload-file",
        files={"file": (filename, content, content_type)},
        data={"category": category},
        headers=headers,
    )


def test_upload_stores_file(client, csrf_token, tmp_path):
    response = upload(client, csrf_token)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["key"].startswith("uploads/")
    assert body["key"].endswith("_license.png")
    assert (tmp_path / "uploads" / body["key"]).read_bytes() == PNG_BYTES
    assert body["url"].startswith("file://")


def test_upload_rejects_wrong_type_for_category(client, csrf_token):
    response = upload(client, csrf_token, filename="resume.pdf", content=b"%PDF", content_type="application/pdf")
    assert response.status_code == 400


def test_upload_accepts_resume_pdf(client, csrf_token):
    response = upload(client, csrf_token, filename="resume.pdf", content=b"%PDF", content_type="application/pdf", category="resume")
    assert response.status_code == 200


def test_upload_requires_csrf(client):
    response = upload(client, None)
    assert response.status_code == 403
    assert response.json()["success"] is False


def test_upload_size_limit(build_client):
    client = build_client(max_document_bytes=10)
    response = upload(client, fetch_csrf(client))
    assert response.status_code == 400
    assert "too large" in response.json()["detail"]


def test_upload_disabled(build_client):
    client = build_client(enable_file_uploads=False)
    response = upload(client, fetch_csrf(client))
    assert response.status_code == 403


def test_upload_gates_run_before_body_parsing(client):
    response = client.post(
        "/api/upload-file",
        content=b"not a multipart body",
        headers={"content-type": "multipart/form-data; boundary=missing"},
    )
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": ERROR_MISSING}
    assert response.headers["X-RateLimit-Limit"] == "10"


def test_upload_without_file(client, csrf_token):
    response = client.post("/api/upload-file", data={"category": "id"}, headers={"x-csrf-token": csrf_token})
    assert response.status_code == 400
    assert response.json()["detail"] == "No file provided"


def test_startup_schedules_sweeps(app):
    with TestClient(app):
        scheduler = app.state.scheduler
        assert scheduler.get_job("rate_limit_sweep") is not None
        assert scheduler.get_job("csrf_token_sweep") is not None
        assert scheduler.get_job("document_retention_sweep") is not None


def test_development_startup_fails_on_binding_drift(build_client, tmp_path):
    (tmp_path / "pdf").mkdir()
    (tmp_path / "pdf" / "Wareworks Application.pdf").write_bytes(build_form_pdf(["Applicant Legal First Name"]))
    client = build_client(environment="development")
    with pytest.raises(BindingDriftError):
        with client:
            pass
