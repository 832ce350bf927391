"""Viewing PIN: a per-user secondary secret gating sensitive record views.

PINs are stored as Argon2 hashes. A forgotten PIN is reset with a six-digit
one-time code sent by email; only its SHA-256 digest is kept, with an expiry,
and it is cleared on first successful use.
"""

import logging
import re
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from crm.core.config import get_settings
from crm.core.errors import InvalidRequest, ServerError, Unauthorized
from crm.core.security import generate_otp, hash_otp, hash_pin, otp_matches, verify_pin
from crm.models.base import utcnow
from crm.models.user import User
from crm.services.mailer import MailDeliveryError, send_email, viewing_pin_otp_message

logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"[0-9]{4}")
# A reset also accepts the longer PINs some accounts were created with.
RESET_PIN_RE = re.compile(r"[0-9]{4,6}")


def _store_pin(user: User, pin: str) -> None:
    user.viewing_pin_hash = hash_pin(pin)
    user.is_viewing_pin_set = True
    user.updated_at = utcnow()


def set_pin(user: User, pin: str | None) -> None:
    if not pin or not PIN_RE.fullmatch(pin):
        raise InvalidRequest("PIN must be 4 digits")
    _store_pin(user, pin)


def check_pin(user: User, pin: str | None) -> None:
    """Raise unless ``pin`` matches. Changes nothing on success."""
    if not pin:
        raise InvalidRequest("PIN is required")
    if not user.is_viewing_pin_set or not user.viewing_pin_hash:
        raise InvalidRequest("Viewing PIN not set. Please set your PIN first.")
    if not verify_pin(pin, user.viewing_pin_hash):
        raise Unauthorized("Invalid PIN")


def change_pin(user: User, current_pin: str | None, new_pin: str | None) -> None:
    if not new_pin or not PIN_RE.fullmatch(new_pin):
        raise InvalidRequest("New PIN must be 4 digits")
    if user.is_viewing_pin_set and user.viewing_pin_hash:
        if not current_pin:
            raise InvalidRequest("Current PIN is required")
        if not verify_pin(current_pin, user.viewing_pin_hash):
            raise Unauthorized("Current PIN is incorrect")
    _store_pin(user, new_pin)


async def request_reset(session: AsyncSession, user: User) -> None:
    """Email a reset code, then persist its digest.

    Nothing is committed unless the mail was handed to the relay, so a
    delivery failure leaves any earlier code untouched.
    """
    settings = get_settings()
    ttl = settings.viewing_pin_otp_ttl_minutes
    otp = generate_otp()
    user_id = user.id

    user.viewing_pin_otp_hash = hash_otp(otp)
    user.viewing_pin_otp_expires_at = utcnow() + timedelta(minutes=ttl)
    session.add(user)

    subject, html, text = viewing_pin_otp_message(user.first_name or "there", otp, ttl)
    try:
        await run_in_threadpool(send_email, [user.email], subject, html, text)
    except MailDeliveryError as exc:
        await session.rollback()
        logger.error("Viewing PIN OTP email to user %s failed: %s", user_id, exc)
        raise ServerError("Failed to send OTP") from exc

    await session.commit()
    logger.info("Viewing PIN reset code issued for user %s", user_id)


def reset_pin(user: User, otp: str | None, new_pin: str | None) -> None:
    if not otp or not new_pin:
        raise InvalidRequest("OTP and new PIN are required")
    if not RESET_PIN_RE.fullmatch(new_pin):
        raise InvalidRequest("New PIN must be 4-6 digits")
    if not user.viewing_pin_otp_hash or not user.viewing_pin_otp_expires_at:
        raise InvalidRequest("No OTP request found. Please request a new OTP.")
    if utcnow() > user.viewing_pin_otp_expires_at:
        raise InvalidRequest("OTP has expired. Please request a new one.")
    if not otp_matches(otp, user.viewing_pin_otp_hash):
        raise InvalidRequest("Invalid OTP")

    _store_pin(user, new_pin)
    user.viewing_pin_otp_hash = None
    user.viewing_pin_otp_expires_at = None
