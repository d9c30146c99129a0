from __future__ import annotations

from datetime import date, timedelta

import aiosmtplib

from syndic.core import mailer
from syndic.core.models import Fee, FeeReminder
from syndic.finance.services import send_fee_reminders


def test_send_email_without_smtp_settings(app):
    result = mailer.send_email("someone@example.com", "Sujet", "<p>Bonjour</p>")
    assert result == {"success": False, "error": "Email service not configured"}


def test_onboarding_code_mail_is_rendered_and_sent(app, monkeypatch):
    app.config.update(SMTP_HOST="smtp.example.com", SMTP_PORT=587, MAIL_FROM="noreply@example.com")
    sent = []

    async def fake_send(config, message):
        sent.append((config, message))

    monkeypatch.setattr(mailer, "_send", fake_send)
    result = mailer.send_onboarding_code("leila@example.com", "Leila Fassi", "AB12CD", "Résidence Al Amal")

    assert result == {"success": True, "error": None}
    config, message = sent[0]
    assert config.smtp_host == "smtp.example.com"
    assert message["To"] == "leila@example.com"
    bodies = [part.get_payload(decode=True).decode("utf-8") for part in message.get_payload()]
    assert len(bodies) == 2
    assert all("AB12CD" in body for body in bodies)


def test_smtp_failure_is_reported(app, monkeypatch):
    app.config.update(SMTP_HOST="smtp.example.com", SMTP_PORT=587, MAIL_FROM="noreply@example.com")

    async def failing_send(config, message):
        raise aiosmtplib.SMTPConnectError("connection refused")

    monkeypatch.setattr(mailer, "_send", failing_send)
    result = mailer.send_email("someone@example.com", "Sujet", "<p>Bonjour</p>")

    assert result["success"] is False
    assert "someone@example.com" in result["error"]


def _capture_mail(app, monkeypatch) -> list:
    app.config.update(SMTP_HOST="smtp.example.com", SMTP_PORT=587, MAIL_FROM="noreply@example.com")
    sent = []

    async def fake_send(config, message):
        sent.append(message)

    monkeypatch.setattr(mailer, "_send", fake_send)
    return sent


def test_overdue_fee_reminder_is_sent_once_per_day(app, monkeypatch):
    sent = _capture_mail(app, monkeypatch)
    today = date.today()

    assert send_fee_reminders(today) == 1
    assert send_fee_reminders(today) == 0

    message = sent[0]
    assert message["To"] == "resident@syndic.local"
    assert "retard" in str(message["Subject"])
    bodies = [part.get_payload(decode=True).decode("utf-8") for part in message.get_payload()]
    assert all("Amende parking" in body for body in bodies)

    reminder = FeeReminder.query.one()
    parking = Fee.query.filter_by(title="Amende parking").one()
    assert reminder.fee_id == parking.id
    assert reminder.reminder_type == "overdue"
    assert reminder.days_before == -15
    assert reminder.sent_on == today


def test_reminder_before_due_date(app, monkeypatch):
    sent = _capture_mail(app, monkeypatch)
    as_of = date.today() + timedelta(days=7)

    assert send_fee_reminders(as_of) == 1
    assert "Paiement dû dans 3 jours" in str(sent[0]["Subject"])
    reminder = FeeReminder.query.one()
    assert reminder.reminder_type == "before_due"
    assert reminder.fee_id == Fee.query.filter_by(title="Nettoyage façade").one().id


def test_reminders_are_not_recorded_without_smtp(app):
    assert send_fee_reminders(date.today()) == 0
    assert FeeReminder.query.count() == 0


def test_reminder_command(app, monkeypatch):
    _capture_mail(app, monkeypatch)
    result = app.test_cli_runner().invoke(args=["fees-send-reminders", "--date", date.today().isoformat()])

    assert result.exit_code == 0
    assert "Reminders sent: 1" in result.output
