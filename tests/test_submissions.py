from __future__ import annotations

import re

import pytest

from conftest import fetch_csrf
from wareworks.middleware.csrf import ERROR_INVALID, ERROR_MISSING
from wareworks.middleware.rate_limit import SUBMISSION
from wareworks.services.submissions import (
    SubmissionMetadata,
    attach_metadata,
    generate_submission_id,
    iso_timestamp,
)

SUBMISSION_ID = re.compile(r"^WW_\d{13}_[0-9a-f]{8}$")


def submit(client, payload, token: str | None = None, **kwargs):
    headers = {"x-csrf-token": token} if token else {}
    return client.post("/api/submit-application", json=payload, headers=headers, **kwargs)


def test_successful_submission(client, csrf_token, payload, transport, services):
    response = submit(client, payload, csrf_token)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert SUBMISSION_ID.match(body["submissionId"])
    assert body["timestamp"] == "2023-11-14T22:13:20.000Z"
    assert body["message"] == "Application submitted successfully"
    assert body["details"]["pdfGeneration"]["success"] is True
    assert body["details"]["googleSheets"] == {"success": True, "skipped": True}
    assert body["details"]["emailNotifications"]["success"] is True
    assert "i9Generation" not in body["details"]
    assert body["nextSteps"] == {
        "confirmationSent": True,
        "expectedResponse": "5-7 business days",
        "contactInfo": "hr@wareworks.me",
    }

    assert len(transport.sent) == 1
    assert [a.filename for a in transport.sent[0].attachments] == [
        f"WareWorks-Application-Maria-Lopez-{body['submissionId']}.pdf"
    ]
    assert services.archive.get(body["submissionId"]) is not None


def test_rate_limit_headers_on_success(client, csrf_token, payload):
    response = submit(client, payload, csrf_token)
    assert response.headers["X-RateLimit-Limit"] == "3"
    assert response.headers["X-RateLimit-Remaining"] == "2"
    assert "X-Request-ID" in response.headers


def test_noncitizen_gets_i9(client, csrf_token, payload, transport):
    payload.update({"citizenshipStatus": "lawful_permanent", "uscisANumber": "A123456789"})
    body = submit(client, payload, csrf_token).json()

    assert body["details"]["i9Generation"]["success"] is True
    filenames = [a.filename for a in transport.sent[0].attachments]
    assert len(filenames) == 2
    assert filenames[1].startswith("WareWorks-I9-Maria-Lopez-")


def test_client_cannot_override_metadata(client, csrf_token, payload, transport):
    payload.update({"submissionId": "WW_forged", "ipAddress": "6.6.6.6"})
    response = client.post(
        "/api/submit-application",
        json=payload,
        headers={"x-csrf-token": csrf_token, "x-forwarded-for": "7.7.7.7"},
    )
    assert response.status_code == 200
    assert SUBMISSION_ID.match(response.json()["submissionId"])
    assert "IP Address: 7.7.7.7" in transport.sent[0].text


def test_missing_csrf_is_rejected(client, payload, transport):
    response = submit(client, payload)
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": ERROR_MISSING}
    assert transport.sent == []


def test_wrong_csrf_token_is_rejected(client, csrf_token, payload):
    response = submit(client, payload, "0" * 64)
    assert response.status_code == 403
    assert response.json()["error"] == ERROR_INVALID


def test_validation_failure_lists_errors(client, csrf_token, transport):
    response = submit(client, {"legalFirstName": "Maria", "socialSecurityNumber": "12345"}, csrf_token)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert "legalLastName is required" in body["errors"]
    assert "Invalid Social Security Number format (use XXX-XX-XXXX)" in body["errors"]
    assert transport.sent == []


def test_invalid_json(client, csrf_token):
    response = client.post(
        "/api/submit-application",
        content=b"{not json",
        headers={"x-csrf-token": csrf_token, "content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid JSON in request body"}


def test_non_object_body(client, csrf_token):
    response = submit(client, ["a", "b"], csrf_token)
    assert response.status_code == 400
    assert response.json()["error"] == "Request body must be a JSON object"


def test_fourth_submission_is_rate_limited(client, csrf_token):
    for _ in range(3):
        assert submit(client, {}, csrf_token).status_code == 400

    response = submit(client, {}, csrf_token)
    assert response.status_code == 429
    body = response.json()
    assert body["success"] is False
    assert body["retryAfter"] == 900
    assert response.headers["Retry-After"] == "900"
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_rate_limit_is_checked_before_csrf(client):
    for _ in range(3):
        assert submit(client, {}).status_code == 403
    assert submit(client, {}).status_code == 429


def test_unexpected_error_returns_500_and_releases_limit(client, csrf_token, payload, services, monkeypatch):
    def explode(_payload):
        raise RuntimeError("boom")

    monkeypatch.setattr(services.orchestrator.validator, "validate", explode)
    response = submit(client, payload, csrf_token)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error. Please try again later."}
    assert services.limiter(SUBMISSION).check_limit("unknown").remaining == 2


def test_disabled_steps_are_skipped(build_client, payload, transport):
    client = build_client(enable_pdf_generation=False, enable_email_notifications=False)
    body = submit(client, payload, fetch_csrf(client)).json()

    assert body["details"]["pdfGeneration"] == {"success": True, "skipped": True}
    assert body["details"]["emailNotifications"] == {"success": True, "skipped": True}
    assert body["nextSteps"]["confirmationSent"] is False
    assert transport.sent == []


def test_spreadsheet_failure_is_not_fatal(build_client, payload):
    client = build_client(enable_google_sheets=True)
    response = submit(client, payload, fetch_csrf(client))

    assert response.status_code == 200
    sheets = response.json()["details"]["googleSheets"]
    assert sheets["success"] is False
    assert "not configured" in sheets["error"]


def test_email_failure_is_not_fatal(client, csrf_token, payload, transport):
    transport.error = RuntimeError("mailbox full")
    response = submit(client, payload, csrf_token)

    assert response.status_code == 200
    email = response.json()["details"]["emailNotifications"]
    assert email == {"success": False, "transport": "fake", "error": "mailbox full"}
    assert response.json()["nextSteps"]["confirmationSent"] is False


def test_submission_id_format():
    assert SUBMISSION_ID.match(generate_submission_id(1_700_000_000.123))
    assert generate_submission_id(1.0) != generate_submission_id(1.0)


def test_iso_timestamp():
    assert iso_timestamp(0) == "1970-01-01T00:00:00.000Z"


def test_attach_metadata_is_read_only():
    metadata = SubmissionMetadata(
        submission_id="WW_1_a",
        server_timestamp="t",
        ip_address="1.1.1.1",
        user_agent="ua",
        referer="direct",
        security_fingerprint="f",
    )
    data = {"legalFirstName": "Maria", "submissionId": "client"}
    merged = attach_metadata(data, metadata)

    assert merged["submissionId"] == "WW_1_a"
    assert data["submissionId"] == "client"
    with pytest.raises(TypeError):
        merged["city"] = "x"
