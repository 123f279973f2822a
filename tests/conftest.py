from __future__ import annotations

import io

import pytest
from fastapi.testclient import TestClient
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from wareworks.core.config import Settings
from wareworks.main import create_app
from wareworks.services.container import build_services
from wareworks.services.documents import LocalDocumentStore
from wareworks.services.notifications import NotificationDispatcher


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    name = "fake"

    def __init__(self, error: Exception | None = None) -> None:
        self.sent = []
        self.error = error

    def send(self, email):
        if self.error is not None:
            raise self.error
        self.sent.append(email)
        return f"<msg-{len(self.sent)}@test>"


def build_form_pdf(text_fields: list[str], checkboxes: list[str] = ()) -> bytes:
    """A one-page fillable PDF with the given AcroForm fields."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=LETTER)
    form = pdf.acroForm
    y = 740
    for name in text_fields:
        pdf.drawString(40, y + 5, name)
        form.textfield(name=name, x=260, y=y, width=280, height=16, borderWidth=0)
        y -= 22
    for name in checkboxes:
        pdf.drawString(40, y + 5, name)
        form.checkbox(name=name, x=260, y=y, size=12, buttonStyle="check")
        y -= 22
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "environment": "test",
        "templates_dir": str(tmp_path / "pdf"),
        "local_uploads_dir": str(tmp_path / "uploads"),
        "enable_google_sheets": False,
        "csrf_cookie_secure": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def services(settings, clock, transport, tmp_path):
    dispatcher = NotificationDispatcher(
        transport,
        sender="WareWorks <web@wareworks.me>",
        recipients=[str(settings.hr_email)],
    )
    return build_services(
        settings,
        clock=clock,
        dispatcher=dispatcher,
        documents=LocalDocumentStore(tmp_path / "uploads"),
    )


@pytest.fixture
def app(settings, services):
    return create_app(settings, services)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def fetch_csrf(client: TestClient) -> str:
    response = client.get("/api/csrf-token")
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def payload() -> dict:
    return {
        "legalFirstName": "Maria",
        "legalLastName": "Lopez",
        "middleInitial": "J",
        "streetAddress": "123 Main St",
        "city": "Springfield",
        "state": "IL",
        "zipCode": "62704",
        "phoneNumber": "(555) 123-4567",
        "socialSecurityNumber": "123-45-6789",
        "email": "maria@example.com",
        "dateOfBirth": "1990-04-15",
        "positionApplied": "Forklift Operator",
        "citizenshipStatus": "us_citizen",
        "language": "en",
    }


@pytest.fixture
def csrf_token(client) -> str:
    return fetch_csrf(client)


@pytest.fixture
def build_client(tmp_path, clock, transport):
    """Builds a client whose settings differ from the defaults used by `client`."""

    def _build(**overrides) -> TestClient:
        settings = make_settings(tmp_path, **overrides)
        dispatcher = NotificationDispatcher(transport, sender="WareWorks <web@wareworks.me>", recipients=["hr@wareworks.me"])
        services = build_services(
            settings,
            clock=clock,
            dispatcher=dispatcher,
            documents=LocalDocumentStore(tmp_path / "uploads"),
        )
        return TestClient(create_app(settings, services))

    return _build
