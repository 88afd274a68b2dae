from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Protocol

import httpx
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail

from .config import DEFAULT_SMTP_HOST, DEFAULT_SMTP_PORT

logger = logging.getLogger(__name__)


class MailError(Exception):
    """Raised when mail sending fails."""


class MailSender(Protocol):
    provider: str

    def send(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None: ...


@dataclass(frozen=True)
class MailConfig:
    from_email: str
    from_name: str


class SMTPMailer:
    provider = "smtp"

    def __init__(
        self,
        username: str,
        password: str,
        config: MailConfig,
        host: str = DEFAULT_SMTP_HOST,
        port: int = DEFAULT_SMTP_PORT,
        timeout: float = 30.0,
    ):
        self._username = username
        self._password = password
        self._config = config
        self._host = host
        self._port = port
        self._timeout = timeout

    def build_message(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self._config.from_name, self._config.from_email))
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        if html_body:
            msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def send(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
        msg = self.build_message(to_email, subject, text_body, html_body)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                server.starttls()
                server.login(self._username, self._password)
                server.sendmail(self._config.from_email, [to_email], msg.as_string())
        except smtplib.SMTPAuthenticationError as exc:
            raise MailError(f"SMTP authentication failed for {self._username}: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise MailError(f"Failed to send email: {exc}") from exc
        logger.info("Mail sent via %s:%s", self._host, self._port)


class SendGridMailer:
    provider = "sendgrid"

    def __init__(self, api_key: str, config: MailConfig):
        self._client = SendGridAPIClient(api_key)
        self._from_email = Email(email=config.from_email, name=config.from_name)

    def send(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
        mail = Mail(
            from_email=self._from_email,
            to_emails=to_email,
            subject=subject,
            plain_text_content=text_body,
            html_content=html_body,
        )
        try:
            response = self._client.send(mail)
        except Exception as exc:  # noqa: BLE001
            raise MailError(f"Failed to send email: {exc}") from exc
        if response.status_code >= 400:
            raise MailError(f"SendGrid returned error status: {response.status_code}")
        logger.info("Mail sent with status %s", response.status_code)


class BrevoMailer:
    provider = "brevo"

    def __init__(self, api_key: str, config: MailConfig, client: Optional[httpx.Client] = None):
        self._api_key = api_key
        self._config = config
        self._client = client

    def send(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
        payload = {
            "sender": {"name": self._config.from_name, "email": self._config.from_email},
            "to": [{"email": to_email}],
            "subject": subject,
            "textContent": text_body,
        }
        if html_body:
            payload["htmlContent"] = html_body

        headers = {"api-key": self._api_key, "content-type": "application/json"}
        try:
            if self._client is not None:
                response = self._client.post("https://api.brevo.com/v3/smtp/email", json=payload, headers=headers)
            else:
                with httpx.Client(timeout=20.0) as client:
                    response = client.post("https://api.brevo.com/v3/smtp/email", json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MailError(f"Failed to send email: {exc}") from exc
        logger.info("Mail sent with status %s", response.status_code)


def build_mailer(
    *,
    brevo_api_key: Optional[str],
    sendgrid_api_key: Optional[str],
    smtp_user: Optional[str],
    smtp_password: Optional[str],
    from_email: str,
    from_name: str,
    smtp_host: str = DEFAULT_SMTP_HOST,
    smtp_port: int = DEFAULT_SMTP_PORT,
) -> MailSender:
    """
    Provider selection:
    - Brevo when its key is set.
    - Otherwise SendGrid when its key is set.
    - Otherwise SMTP with username/password.
    """
    config = MailConfig(from_email=from_email, from_name=from_name)
    if brevo_api_key and brevo_api_key.strip():
        return BrevoMailer(brevo_api_key.strip(), config)
    if sendgrid_api_key and sendgrid_api_key.strip():
        return SendGridMailer(sendgrid_api_key.strip(), config)
    if smtp_user and smtp_password:
        return SMTPMailer(smtp_user, smtp_password, config, host=smtp_host, port=smtp_port)
    raise MailError("No mail provider configured: set BREVO_API_KEY, SENDGRID_API_KEY or SMTP_USER/SMTP_PASS.")
