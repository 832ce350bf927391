"""Outbound email over SMTP, plus the message bodies the app sends."""

import html as html_lib
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from crm.core.config import get_settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """The SMTP server could not be reached or rejected the message."""


def send_email(to: list[str], subject: str, html: str, text: str = "") -> None:
    """Hand a message to the configured SMTP relay. Blocking; raises on failure.

    Call through ``run_in_threadpool`` or a background task from async code.
    """
    settings = get_settings()
    if not settings.smtp_host:
        raise MailDeliveryError("SMTP is not configured")
    if not to:
        raise MailDeliveryError("No recipients")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = formataddr((settings.email_from_name, settings.email_from))
    msg["To"] = ", ".join(to)
    msg.set_content(text or "This message requires an HTML-capable mail client.")
    msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(msg)
    except (OSError, smtplib.SMTPException) as exc:
        raise MailDeliveryError(str(exc)) from exc

    logger.info("Sent '%s' to %d recipient(s)", subject, len(to))


def send_email_quietly(to: list[str], subject: str, html: str, text: str = "") -> None:
    """Background-task variant: failures are logged, never raised."""
    try:
        send_email(to, subject, html, text)
    except MailDeliveryError:
        logger.exception("Email '%s' to %s failed", subject, to)


# ── Message builders ──────────────────────────────────────────

def viewing_pin_otp_message(first_name: str, otp: str, ttl_minutes: int) -> tuple[str, str, str]:
    """Return (subject, html, text) for a viewing-PIN reset code."""
    subject = "Reset Your Viewing PIN - OTP"
    text = (
        f"Hello {first_name},\n\n"
        f"Your one-time code to reset your viewing PIN is {otp}.\n"
        f"This OTP is valid for {ttl_minutes} minutes.\n\n"
        "If you did not request this, you can ignore this email."
    )
    html = (
        f"<p>Hello {html_lib.escape(first_name)},</p>"
        f"<p>Your one-time code to reset your viewing PIN is:</p>"
        f"<h2 style=\"letter-spacing:4px\">{otp}</h2>"
        f"<p>This OTP is valid for {ttl_minutes} minutes.</p>"
        "<p>If you did not request this, you can ignore this email.</p>"
    )
    return subject, html, text


def _meeting_lines(meeting) -> list[tuple[str, str]]:
    lines = [
        ("When", f"{meeting.starts_at:%Y-%m-%d %H:%M} - {meeting.ends_at:%H:%M} UTC"),
    ]
    if meeting.location:
        lines.append(("Where", meeting.location))
    if meeting.meeting_link:
        lines.append(("Join", meeting.meeting_link))
    if meeting.agenda:
        lines.append(("Agenda", meeting.agenda))
    return lines


def meeting_invitation_message(meeting, organizer: str) -> tuple[str, str, str]:
    subject = f"Meeting Invitation: {meeting.title}"
    lines = _meeting_lines(meeting)
    text = f"{organizer} invited you to \"{meeting.title}\".\n\n" + "\n".join(
        f"{label}: {value}" for label, value in lines
    )
    html = (
        f"<p>{html_lib.escape(organizer)} invited you to <strong>{html_lib.escape(meeting.title)}</strong>.</p><ul>"
        + "".join(f"<li><strong>{label}:</strong> {html_lib.escape(value)}</li>" for label, value in lines)
        + "</ul>"
    )
    return subject, html, text


def meeting_cancellation_message(meeting, reason: str | None) -> tuple[str, str, str]:
    subject = f"Meeting Cancelled: {meeting.title}"
    when = f"{meeting.starts_at:%Y-%m-%d %H:%M} UTC"
    text = f"The meeting \"{meeting.title}\" scheduled for {when} has been cancelled."
    html = f"<p>The meeting <strong>{html_lib.escape(meeting.title)}</strong> scheduled for {when} has been cancelled.</p>"
    if reason:
        text += f"\n\nReason: {reason}"
        html += f"<p>Reason: {html_lib.escape(reason)}</p>"
    return subject, html, text
