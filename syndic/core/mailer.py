"""
Outgoing email over SMTP.

Messages are sent with aiosmtplib; Flask views are synchronous so each send
runs its own event loop through ``asyncio.run``. Callers get a result dict
(``{"success": bool, "error": str | None}``) and decide whether a failure
matters: OTP and onboarding mails are best effort and only logged.
"""

from __future__ import annotations

import asyncio
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import aiosmtplib
from flask import current_app, render_template

from syndic.core.logging import get_logger

log = get_logger(__name__)


class MailConfig:
    """SMTP settings read from the Flask config."""

    def __init__(self, config: dict[str, Any]):
        self.smtp_host = config.get("SMTP_HOST") or ""
        self.smtp_port = int(config.get("SMTP_PORT") or 0)
        self.smtp_username = config.get("SMTP_USERNAME") or ""
        self.smtp_password = config.get("SMTP_PASSWORD") or ""
        self.smtp_use_tls = bool(config.get("SMTP_USE_TLS"))
        self.from_email = config.get("MAIL_FROM") or ""
        self.from_name = config.get("MAIL_FROM_NAME") or ""

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port and self.from_email)

    def validate(self) -> list[str]:
        errors = []
        if not self.smtp_host:
            errors.append("SMTP_HOST is required")
        if self.smtp_port <= 0:
            errors.append("SMTP_PORT must be a positive integer")
        if not self.from_email:
            errors.append("MAIL_FROM is required")
        return errors


def _build_message(config: MailConfig, to_email: str, subject: str, html: str, text: str | None) -> MIMEMultipart:
    message = MIMEMultipart("alternative")
    message["From"] = f"{config.from_name} <{config.from_email}>" if config.from_name else config.from_email
    message["To"] = to_email
    message["Subject"] = subject
    if text:
        message.attach(MIMEText(text, "plain", "utf-8"))
    message.attach(MIMEText(html, "html", "utf-8"))
    return message


async def _send(config: MailConfig, message: MIMEMultipart) -> None:
    async with aiosmtplib.SMTP(
        hostname=config.smtp_host,
        port=config.smtp_port,
        use_tls=config.smtp_use_tls,
    ) as smtp:
        if config.smtp_username and config.smtp_password:
            await smtp.login(config.smtp_username, config.smtp_password)
        await smtp.send_message(message)


def send_email(to_email: str, subject: str, html: str, text: str | None = None) -> dict[str, Any]:
    config = MailConfig(current_app.config)
    if not config.is_configured():
        log.warning("email_not_configured", to=to_email, subject=subject, problems=config.validate())
        return {"success": False, "error": "Email service not configured"}

    message = _build_message(config, to_email, subject, html, text)
    try:
        asyncio.run(_send(config, message))
    except (aiosmtplib.SMTPException, OSError) as exc:
        log.error("email_send_failed", to=to_email, subject=subject, error=str(exc))
        return {"success": False, "error": f"Failed to send email to {to_email}: {exc}"}
    log.info("email_sent", to=to_email, subject=subject)
    return {"success": True, "error": None}


def send_onboarding_code(to_email: str, full_name: str, code: str, residence_name: str | None = None) -> dict[str, Any]:
    ttl = current_app.config.get("OTP_TTL_MINUTES", 15)
    context = {"full_name": full_name, "code": code, "ttl": ttl, "residence_name": residence_name}
    html = render_template("email/onboarding_code.html", **context)
    text = render_template("email/onboarding_code.txt", **context)
    return send_email(to_email, "Votre code d'accès", html, text)


def _reminder_subject(days_until_due: int, residence_name: str) -> str:
    if days_until_due > 0:
        plural = "s" if days_until_due > 1 else ""
        return f"Rappel: Paiement dû dans {days_until_due} jour{plural} - {residence_name}"
    if days_until_due == 0:
        return f"URGENT: Paiement dû aujourd'hui - {residence_name}"
    return f"URGENT: Paiement en retard - {residence_name}"


def send_fee_reminder(
    to_email: str,
    full_name: str,
    residence_name: str,
    fee_title: str,
    amount: str,
    due_date,
    apartment_number: str | None,
    days_until_due: int,
    bank_rib: str | None = None,
) -> dict[str, Any]:
    context = {
        "full_name": full_name,
        "residence_name": residence_name,
        "fee_title": fee_title,
        "amount": amount,
        "currency": current_app.config.get("CURRENCY", "MAD"),
        "due_date": due_date,
        "apartment_number": apartment_number or "N/A",
        "days_until_due": days_until_due,
        "days_late": abs(days_until_due),
        "bank_rib": bank_rib,
    }
    html = render_template("email/fee_reminder.html", **context)
    text = render_template("email/fee_reminder.txt", **context)
    return send_email(to_email, _reminder_subject(days_until_due, residence_name), html, text)
