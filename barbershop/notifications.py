# barbershop/notifications.py
"""
Outgoing client email.

Bookings talk to a ``Notifier``; the concrete transport is chosen once per
process by ``get_notifier`` and can be overridden as a FastAPI dependency.
Sending never raises: transport errors come back as a failed DeliveryResult.
"""
import logging
import os
import smtplib
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import (
    APP_ENV,
    CONTACT_EMAIL,
    MAIL_FROM,
    SHOP_NAME,
    SMTP_HOST,
    SMTP_PASS,
    SMTP_PORT,
    SMTP_USER,
)
from .core import format_day

logger = logging.getLogger(__name__)

_templates_dir = os.path.join(os.path.dirname(__file__), "templates")
_jinja_env = Environment(
    loader=FileSystemLoader(_templates_dir),
    autoescape=select_autoescape(["html", "xml"]),
)


@dataclass
class DeliveryResult:
    success: bool
    error: Optional[str] = None


@dataclass
class BookingSummary:
    booking_id: int
    client_name: str
    service_name: str
    date: date
    time: str
    price: float

    @property
    def day_label(self) -> str:
        return format_day(self.date)


@dataclass
class ClientSummary:
    name: str
    email: str
    phone_number: str


def render_email(template_name: str, **context) -> str:
    base = {
        "shop_name": SHOP_NAME,
        "contact_email": CONTACT_EMAIL,
    }
    base.update(context or {})
    return _jinja_env.get_template(template_name).render(**base)


class Notifier:
    """Renders the client emails; subclasses decide how they leave the process."""

    def deliver(self, to_addr: str, subject: str, html: str) -> DeliveryResult:
        raise NotImplementedError

    def _send(self, to_addr: str, subject: str, template: str, **context) -> DeliveryResult:
        try:
            html = render_email(template, **context)
        except Exception as exc:
            logger.exception("Rendering %s for %s failed", template, to_addr)
            return DeliveryResult(success=False, error=str(exc))
        result = self.deliver(to_addr, subject, html)
        if result.success:
            logger.info("Email '%s' sent to %s", subject, to_addr)
        else:
            logger.warning("Email '%s' to %s failed: %s", subject, to_addr, result.error)
        return result

    def send_verification_code(self, recipient: str, code: str, booking_ref: BookingSummary) -> DeliveryResult:
        return self._send(
            recipient,
            f"Verification code for your booking - {SHOP_NAME}",
            "verification_code.html",
            code=code,
            booking=booking_ref,
        )

    def send_confirmation(self, recipient: str, summary: BookingSummary) -> DeliveryResult:
        return self._send(
            recipient,
            f"Your appointment is confirmed - {SHOP_NAME}",
            "booking_confirmed.html",
            booking=summary,
        )

    def send_rejection(self, recipient: str, summary: BookingSummary) -> DeliveryResult:
        return self._send(
            recipient,
            f"Your appointment request - {SHOP_NAME}",
            "booking_declined.html",
            booking=summary,
        )

    def send_blocked_notice(self, recipient: str, client_summary: ClientSummary, reason: str) -> DeliveryResult:
        return self._send(
            recipient,
            f"Online booking unavailable - {SHOP_NAME}",
            "client_blocked.html",
            client=client_summary,
            reason=reason,
        )


class SmtpNotifier(Notifier):
    def __init__(self, host=SMTP_HOST, port=SMTP_PORT, user=SMTP_USER, password=SMTP_PASS, sender=MAIL_FROM):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def deliver(self, to_addr: str, subject: str, html: str) -> DeliveryResult:
        if not self.host or not self.sender:
            return DeliveryResult(success=False, error="SMTP not configured")

        domain = self.sender.split("@")[-1] if "@" in self.sender else "barbershop.local"
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{SHOP_NAME} <{self.sender}>"
        msg["To"] = to_addr
        msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
        msg["Date"] = datetime.utcnow().strftime("%a, %d %b %Y %H:%M:%S +0000")
        msg.attach(MIMEText("Open this message in an HTML-capable email client.", "plain", _charset="utf-8"))
        msg.attach(MIMEText(html, "html", _charset="utf-8"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                server.starttls()
                if self.user or self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, [to_addr], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("SMTP send failed")
            return DeliveryResult(success=False, error=str(exc))
        return DeliveryResult(success=True)


class ConsoleNotifier(Notifier):
    """Writes emails to the log instead of sending them (local development)."""

    def deliver(self, to_addr: str, subject: str, html: str) -> DeliveryResult:
        logger.info("[console email] to=%s subject=%s\n%s", to_addr, subject, html)
        return DeliveryResult(success=True)


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        if SMTP_HOST or APP_ENV == "production":
            _notifier = SmtpNotifier()
        else:
            logger.warning("SMTP_HOST not set; emails will be written to the log")
            _notifier = ConsoleNotifier()
    return _notifier
