"""
Outbound notification transports.

Every transport raises TransportError when delivery fails; callers never see
httpx or smtplib exceptions.
"""
import asyncio
import smtplib
import uuid
from email.mime.text import MIMEText
from functools import lru_cache
from typing import Optional, Protocol

import httpx

from school_attendance.config import settings
from school_attendance.errors import TransportError
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)


class EmailTransport(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


class SmsTransport(Protocol):
    async def send(self, to: str, body: str) -> None: ...


class LogEmailTransport:
    """Placeholder that only writes the message to the log."""

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("EMAIL NOTIFICATION to=%s subject=%r\n%s", to, subject, body)


class LogSmsTransport:
    async def send(self, to: str, body: str) -> None:
        logger.info("SMS NOTIFICATION to=%s\n%s", to, body)


class SmtpEmailTransport:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _send_blocking(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [to], msg.as_string())

    async def send(self, to: str, subject: str, body: str) -> None:
        try:
            await asyncio.to_thread(self._send_blocking, to, subject, body)
        except smtplib.SMTPAuthenticationError as exc:
            raise TransportError(f"SMTP authentication failed: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"SMTP delivery to {to} failed: {exc}") from exc


class WebhookClient:
    """
    Posts ``{type, recipient, subject, message}`` to a notification endpoint
    and expects ``{"success": true, ...}`` back.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.url = url
        self.client = client or httpx.AsyncClient(headers=headers, timeout=timeout)

    async def post(self, kind: str, recipient: str, subject: str, message: str) -> dict:
        payload = {
            "type": kind,
            "recipient": recipient,
            "subject": subject,
            "message": message,
        }
        try:
            response = await self.client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransportError(f"{kind} webhook to {recipient} failed: {exc}") from exc

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else body
            raise TransportError(f"{kind} webhook rejected message: {error}")
        return body

    async def close(self) -> None:
        await self.client.aclose()


class WebhookEmailTransport:
    def __init__(self, webhook: WebhookClient):
        self.webhook = webhook

    async def send(self, to: str, subject: str, body: str) -> None:
        await self.webhook.post("email", to, subject, body)


class WebhookSmsTransport:
    def __init__(self, webhook: WebhookClient):
        self.webhook = webhook

    async def send(self, to: str, body: str) -> None:
        await self.webhook.post("sms", to, "", body)


def new_message_id() -> str:
    return str(uuid.uuid4())


@lru_cache(maxsize=1)
def _webhook_client() -> WebhookClient:
    if not settings.NOTIFY_WEBHOOK_URL:
        raise RuntimeError("NOTIFY_WEBHOOK_URL must be set for webhook transports")
    return WebhookClient(
        settings.NOTIFY_WEBHOOK_URL,
        settings.NOTIFY_WEBHOOK_TOKEN,
        timeout=settings.TRANSPORT_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_email_transport() -> EmailTransport:
    backend = settings.EMAIL_TRANSPORT.strip().lower()
    if backend == "smtp":
        return SmtpEmailTransport(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            settings.SMTP_SENDER,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            timeout=settings.TRANSPORT_TIMEOUT_SECONDS,
        )
    if backend == "webhook":
        return WebhookEmailTransport(_webhook_client())
    if backend != "log":
        logger.warning("Unknown EMAIL_TRANSPORT %r, using log transport", backend)
    return LogEmailTransport()


@lru_cache(maxsize=1)
def get_sms_transport() -> SmsTransport:
    backend = settings.SMS_TRANSPORT.strip().lower()
    if backend == "webhook":
        return WebhookSmsTransport(_webhook_client())
    if backend != "log":
        logger.warning("Unknown SMS_TRANSPORT %r, using log transport", backend)
    return LogSmsTransport()
