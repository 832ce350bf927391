"""SMTP delivery and message builders."""

import smtplib
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from crm.core.config import get_settings
from crm.services import mailer


def test_send_without_relay_raises():
    with pytest.raises(mailer.MailDeliveryError, match="not configured"):
        mailer.send_email(["a@example.com"], "Hi", "<p>Hi</p>")


def test_send_uses_configured_relay(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(settings, "smtp_user", "mailer")
    monkeypatch.setattr(settings, "smtp_password", "pw")

    smtp = MagicMock()
    with patch("crm.services.mailer.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.__enter__.return_value = smtp
        mailer.send_email(["a@example.com", "b@example.com"], "Hello", "<p>Hello</p>", "Hello")

    smtp_cls.assert_called_once_with("smtp.example.com", settings.smtp_port, timeout=15)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("mailer", "pw")
    sent = smtp.send_message.call_args.args[0]
    assert sent["To"] == "a@example.com, b@example.com"
    assert sent["Subject"] == "Hello"


def test_relay_errors_are_wrapped(monkeypatch):
    monkeypatch.setattr(get_settings(), "smtp_host", "smtp.example.com")
    with patch("crm.services.mailer.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
        with pytest.raises(mailer.MailDeliveryError):
            mailer.send_email(["a@example.com"], "Hi", "<p>Hi</p>")


def test_quiet_send_swallows_delivery_errors():
    # no relay configured: logged, not raised
    mailer.send_email_quietly(["a@example.com"], "Hi", "<p>Hi</p>")


def test_otp_message_mentions_code_and_ttl():
    subject, html, text = mailer.viewing_pin_otp_message("Kavya", "482913", 10)
    assert subject == "Reset Your Viewing PIN - OTP"
    assert "482913" in text and "482913" in html
    assert "valid for 10 minutes" in text


def test_meeting_messages():
    meeting = SimpleNamespace(
        title="Demo",
        starts_at=datetime(2026, 11, 2, 10, 0),
        ends_at=datetime(2026, 11, 2, 11, 0),
        location="Video",
        meeting_link="https://meet.jit.si/crm-1-abc",
        agenda="",
        description="",
    )
    subject, html, text = mailer.meeting_invitation_message(meeting, "Meera Iyer")
    assert subject == "Meeting Invitation: Demo"
    assert "Meera Iyer" in text
    assert "2026-11-02 10:00" in text

    subject, _, text = mailer.meeting_cancellation_message(meeting, "Client unavailable")
    assert subject == "Meeting Cancelled: Demo"
    assert "Reason: Client unavailable" in text


def test_user_text_is_escaped_in_html():
    meeting = SimpleNamespace(
        title="<script>alert(1)</script>",
        starts_at=datetime(2026, 11, 2, 10, 0),
        ends_at=datetime(2026, 11, 2, 11, 0),
        location="Room <b>4</b>",
        meeting_link="",
        agenda="Q&A",
        description="",
    )
    _, html, text = mailer.meeting_invitation_message(meeting, "Meera <Iyer>")
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "Room &lt;b&gt;4&lt;/b&gt;" in html
    assert "Q&amp;A" in html
    assert "Meera &lt;Iyer&gt;" in html
    assert "<script>" in text

    _, html, _ = mailer.meeting_cancellation_message(meeting, "<i>moved</i>")
    assert "&lt;i&gt;moved&lt;/i&gt;" in html
    assert "<script>" not in html
