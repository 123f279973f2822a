from __future__ import annotations

import base64
import html
import json
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

import urllib3
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from wareworks.core.config import Settings
from wareworks.core.errors import DispatchError
from wareworks.core.paths import resolve_repo_path
from wareworks.services.pdf_fields import entries, text_of
from wareworks.services.pdf_filler import GeneratedDocument

logger = logging.getLogger("ww.notify")

TEMPLATE_NAME = "application_received"


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


@dataclass(frozen=True)
class OutgoingEmail:
    subject: str
    sender: str
    to: list[str]
    text: str
    html: str
    cc: list[str] = field(default_factory=list)
    reply_to: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    transport: str
    message_id: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "transport": self.transport}
        if self.message_id:
            data["messageId"] = self.message_id
        if self.error:
            data["error"] = self.error
        return data


class Transport(Protocol):
    name: str

    def send(self, email: OutgoingEmail) -> str | None: ...


def build_mime(email: OutgoingEmail) -> MIMEMultipart:
    msg = MIMEMultipart("mixed")
    msg["From"] = email.sender
    msg["To"] = ", ".join(email.to)
    if email.cc:
        msg["Cc"] = ", ".join(email.cc)
    if email.reply_to:
        msg["Reply-To"] = email.reply_to
    msg["Subject"] = email.subject

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(email.text, "plain", "utf-8"))
    body.attach(MIMEText(email.html, "html", "utf-8"))
    msg.attach(body)

    for attachment in email.attachments:
        subtype = attachment.mime_type.split("/", 1)[-1]
        part = MIMEApplication(attachment.content, _subtype=subtype)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        msg.attach(part)
    return msg


class GmailTransport:
    """Gmail API send through a domain-delegated service account."""

    name = "gmail"

    def __init__(self, *, credentials_path: str, sender_email: str) -> None:
        self.credentials_path = credentials_path
        self.sender_email = sender_email

    def _client(self):
        scopes = ["https://www.googleapis.com/auth/gmail.send"]
        credentials = Credentials.from_service_account_file(
            str(resolve_repo_path(self.credentials_path)), scopes=scopes
        )
        credentials = credentials.with_subject(self.sender_email)
        return build("gmail", "v1", credentials=credentials, cache_discovery=False)

    def send(self, email: OutgoingEmail) -> str | None:
        raw = base64.urlsafe_b64encode(build_mime(email).as_bytes()).decode("utf-8")
        response = self._client().users().messages().send(userId=self.sender_email, body={"raw": raw}).execute()
        return response.get("id")


class MailgunTransport:
    name = "mailgun"

    def __init__(
        self,
        *,
        api_key: str,
        domain: str,
        base_url: str,
        timeout: float,
        http: urllib3.PoolManager | None = None,
    ) -> None:
        self.api_key = api_key
        self.domain = domain
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or urllib3.PoolManager()

    def send(self, email: OutgoingEmail) -> str | None:
        fields: list[tuple[str, Any]] = [
            ("from", email.sender),
            ("subject", email.subject),
            ("text", email.text),
            ("html", email.html),
        ]
        fields.extend(("to", address) for address in email.to)
        fields.extend(("cc", address) for address in email.cc)
        if email.reply_to:
            fields.append(("h:Reply-To", email.reply_to))
        fields.extend(("attachment", (a.filename, a.content, a.mime_type)) for a in email.attachments)

        try:
            response = self.http.request(
                "POST",
                f"{self.base_url}/{self.domain}/messages",
                fields=fields,
                headers=urllib3.make_headers(basic_auth=f"api:{self.api_key}"),
                timeout=urllib3.Timeout(total=self.timeout),
                retries=False,
            )
        except urllib3.exceptions.HTTPError as exc:
            raise DispatchError(f"Mailgun unreachable: {exc}") from exc
        if not 200 <= response.status < 300:
            raise DispatchError(f"Mailgun API error: HTTP {response.status}")
        try:
            return json.loads(response.data).get("id")
        except (ValueError, AttributeError):
            return None


class SMTPTransport:
    name = "smtp"

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool,
        timeout: float,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, email: OutgoingEmail) -> str | None:
        msg = build_mime(email)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                if self.use_tls:
                    client.starttls()
                if self.username:
                    client.login(self.username, self.password)
                client.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(f"SMTP send failed: {exc}") from exc
        return None


class LogOnlyTransport:
    """Used when no email provider is configured; the message is only logged."""

    name = "log"

    def send(self, email: OutgoingEmail) -> str | None:
        logger.info(
            "email_not_configured",
            extra={
                "subject": email.subject,
                "to": email.to,
                "attachments": [a.filename for a in email.attachments],
            },
        )
        return None


def select_transport(settings: Settings) -> Transport:
    timeout = float(settings.notification_timeout_seconds)
    if settings.enable_gmail and settings.google_application_credentials:
        return GmailTransport(
            credentials_path=settings.google_application_credentials,
            sender_email=settings.gmail_sender_email,
        )
    if settings.mailgun_api_key and settings.mailgun_domain:
        return MailgunTransport(
            api_key=settings.mailgun_api_key,
            domain=settings.mailgun_domain,
            base_url=settings.mailgun_base_url,
            timeout=timeout,
        )
    if settings.smtp_host:
        return SMTPTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=timeout,
        )
    return LogOnlyTransport()


def _template_path(name: str, suffix: str) -> Path:
    return resolve_repo_path(f"templates/email/{name}.{suffix}")


def render_template(name: str, suffix: str, context: Mapping[str, Any]) -> str:
    raw = _template_path(name, suffix).read_text(encoding="utf-8")
    return raw.format_map({k: ("" if v is None else v) for k, v in context.items()}).strip()


def _format_submitted(value: Any) -> str:
    raw = text_of(value)
    if not raw:
        return "Unknown"
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return raw
    return parsed.strftime("%B %d, %Y at %I:%M %p %Z").strip()


def summarize_documents(payload: Mapping[str, Any]) -> dict[str, int]:
    counts = {"identification": 0, "resume": 0, "certification": 0}
    for doc in entries(payload, "documents"):
        kind = text_of(doc.get("type")) or text_of(doc.get("category"))
        if kind == "id":
            kind = "identification"
        if kind in counts:
            counts[kind] += 1
    return counts


def email_context(payload: Mapping[str, Any]) -> dict[str, str]:
    counts = summarize_documents(payload)
    return {
        "name": f"{text_of(payload.get('legalFirstName'))} {text_of(payload.get('legalLastName'))}".strip(),
        "position": text_of(payload.get("positionApplied")) or "Not specified",
        "phone": text_of(payload.get("phoneNumber")),
        "email": text_of(payload.get("email")) or "Not provided",
        "submission_id": text_of(payload.get("submissionId")),
        "submitted": _format_submitted(payload.get("serverTimestamp")),
        "language": "Spanish" if text_of(payload.get("language")) == "es" else "English",
        "id_documents": "Provided" if counts["identification"] else "Not provided",
        "resumes": "Provided" if counts["resume"] else "Not provided",
        "certifications": f"{counts['certification']} files" if counts["certification"] else "None provided",
        "ip_address": text_of(payload.get("ipAddress")) or "unknown",
        "fingerprint": text_of(payload.get("securityFingerprint")),
    }


class NotificationDispatcher:
    """
    Emails HR about a new application with the generated documents attached.

    Transport failures are reported in the returned DispatchResult; nothing is
    raised to the caller and nothing is retried.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        sender: str,
        recipients: list[str],
        cc: list[str] | None = None,
        reply_to: str | None = None,
    ) -> None:
        self.transport = transport
        self.sender = sender
        self.recipients = recipients
        self.cc = cc or []
        self.reply_to = reply_to

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationDispatcher":
        transport = select_transport(settings)
        if transport.name == "gmail":
            sender = f"{settings.gmail_sender_name} <{settings.gmail_sender_email}>"
        elif transport.name == "mailgun":
            sender = f"{settings.from_name} <noreply@{settings.mailgun_domain}>"
        else:
            sender = f"{settings.from_name} <{settings.from_email}>"
        return cls(
            transport,
            sender=sender,
            recipients=[str(settings.hr_email)],
            cc=[str(settings.admin_email)] if settings.admin_email != settings.hr_email else [],
            reply_to=str(settings.hr_email),
        )

    def compose(
        self,
        payload: Mapping[str, Any],
        document: GeneratedDocument | None = None,
        *,
        extra_documents: Iterable[GeneratedDocument] = (),
    ) -> OutgoingEmail:
        context = email_context(payload)
        position = text_of(payload.get("positionApplied")) or "General Position"
        subject = f"New WareWorks Application: {context['name']} - {position}"
        attachments = [
            Attachment(filename=doc.filename, content=doc.content, mime_type=doc.mime_type)
            for doc in (document, *extra_documents)
            if doc is not None
        ]
        return OutgoingEmail(
            subject=subject,
            sender=self.sender,
            to=list(self.recipients),
            cc=list(self.cc),
            reply_to=self.reply_to,
            text=render_template(TEMPLATE_NAME, "txt", context),
            html=render_template(TEMPLATE_NAME, "html", {k: html.escape(v) for k, v in context.items()}),
            attachments=attachments,
        )

    def notify(
        self,
        payload: Mapping[str, Any],
        document: GeneratedDocument | None = None,
        *,
        extra_documents: Iterable[GeneratedDocument] = (),
    ) -> DispatchResult:
        submission_id = text_of(payload.get("submissionId"))
        try:
            email = self.compose(payload, document, extra_documents=extra_documents)
            message_id = self.transport.send(email)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "notification_failed",
                extra={"transport": self.transport.name, "submission_id": submission_id, "error": str(exc)},
            )
            return DispatchResult(success=False, transport=self.transport.name, error=str(exc))
        logger.info(
            "notification_sent",
            extra={
                "transport": self.transport.name,
                "submission_id": submission_id,
                "attachments": len(email.attachments),
            },
        )
        return DispatchResult(success=True, transport=self.transport.name, message_id=message_id)
