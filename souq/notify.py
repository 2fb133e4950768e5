import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import Dict, Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


class EmailError(Exception):
    pass


# ---------------------------
# Templates
# ---------------------------
TEMPLATES: Dict[str, Dict[str, Dict[str, str]]] = {
    "verification": {
        "en": {
            "subject": "Verify your email",
            "body": "<p>Hello {name},</p><p>Your verification code is <b>{otp}</b>.</p>"
                    "<p>This code expires in {expires_in} minutes.</p>",
        },
        "ar": {
            "subject": "تأكيد بريدك الإلكتروني",
            "body": "<p dir=\"rtl\">مرحباً {name}،</p><p dir=\"rtl\">رمز التحقق الخاص بك هو <b>{otp}</b>.</p>"
                    "<p dir=\"rtl\">تنتهي صلاحية هذا الرمز خلال {expires_in} دقيقة.</p>",
        },
    },
    "reset_password": {
        "en": {
            "subject": "Reset your password",
            "body": "<p>Hello {name},</p><p>Use <b>{otp}</b> to reset your password.</p>"
                    "<p>This code expires in {expires_in} minutes. "
                    "If you did not ask for a reset, ignore this email.</p>",
        },
        "ar": {
            "subject": "إعادة تعيين كلمة المرور",
            "body": "<p dir=\"rtl\">مرحباً {name}،</p><p dir=\"rtl\">استخدم الرمز <b>{otp}</b> لإعادة تعيين كلمة المرور.</p>"
                    "<p dir=\"rtl\">تنتهي صلاحية هذا الرمز خلال {expires_in} دقيقة.</p>",
        },
    },
    "welcome": {
        "en": {
            "subject": "Welcome to souq",
            "body": "<p>Hello {name},</p><p>Your email is verified and your account is ready.</p>",
        },
        "ar": {
            "subject": "مرحباً بك في سوق",
            "body": "<p dir=\"rtl\">مرحباً {name}،</p><p dir=\"rtl\">تم تأكيد بريدك الإلكتروني وحسابك جاهز.</p>",
        },
    },
}


def render(template: str, language: Optional[str], **values) -> Dict[str, str]:
    variants = TEMPLATES[template]
    chosen = variants.get(language or "en") or variants["en"]
    return {"subject": chosen["subject"], "html": chosen["body"].format(**values)}


# ---------------------------
# Providers
# ---------------------------
class Mailer:
    async def send(self, to: str, subject: str, html: str) -> None:
        raise NotImplementedError

    async def send_template(self, to: str, template: str, language: Optional[str] = None, **values) -> None:
        message = render(template, language, **values)
        await self.send(to, message["subject"], message["html"])


class ConsoleMailer(Mailer):
    """Development provider: writes the message to the log instead of sending it."""

    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info("email to=%s subject=%r\n%s", to, subject, html)


class SmtpMailer(Mailer):
    def __init__(self, host: str, port: int, user: Optional[str], password: Optional[str], sender: str):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def _send_sync(self, to: str, subject: str, html: str) -> None:
        msg = MIMEText(html, "html", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
                smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password or "")
                smtp.sendmail(self.sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"smtp delivery to {to} failed: {e}") from e

    async def send(self, to: str, subject: str, html: str) -> None:
        await asyncio.to_thread(self._send_sync, to, subject, html)


class BrevoMailer(Mailer):
    def __init__(self, api_key: str, sender_email: str, sender_name: str, timeout: int = 10):
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout

    async def send(self, to: str, subject: str, html: str) -> None:
        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        headers = {"api-key": self.api_key, "Accept": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                r = await client.post(BREVO_URL, json=payload, headers=headers)
                r.raise_for_status()
            except httpx.HTTPError as e:
                raise EmailError(f"brevo delivery to {to} failed: {e}") from e
        logger.debug("brevo accepted email to=%s id=%s", to, r.json().get("messageId"))


def build_mailer(settings: Settings) -> Mailer:
    provider = settings.email_provider
    if provider == "smtp":
        if not settings.email_host:
            raise ValueError("EMAIL_HOST is required when EMAIL_PROVIDER=smtp")
        return SmtpMailer(settings.email_host, settings.email_port, settings.email_user,
                          settings.email_pass, settings.email_from)
    if provider == "brevo":
        if not (settings.brevo_api_key and settings.brevo_sender_email and settings.brevo_sender_name):
            raise ValueError("BREVO_API_KEY, BREVO_SENDER_EMAIL and BREVO_SENDER_NAME are required")
        return BrevoMailer(settings.brevo_api_key, settings.brevo_sender_email, settings.brevo_sender_name)
    if provider == "console":
        return ConsoleMailer()
    raise ValueError(f"unknown EMAIL_PROVIDER {provider!r}")
