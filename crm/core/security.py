"""Security utilities: password / PIN hashing, OTPs, signatures and JWTs."""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from crm.core.config import get_settings

settings = get_settings()

# ── Password / PIN hashing (Argon2) ──────────────────────────

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_pin(pin: str) -> str:
    """Salted Argon2 hash of a viewing PIN."""
    return pwd_context.hash(pin)


def verify_pin(pin: str, hashed: str) -> bool:
    return pwd_context.verify(pin, hashed)


# ── One-time codes (SHA-256, deterministic for comparison) ────

def generate_otp() -> str:
    """Six-digit numeric one-time code."""
    return str(100000 + secrets.randbelow(900000))


def hash_otp(otp: str) -> str:
    """One-way SHA-256 hash for OTP storage.

    OTPs live for minutes and are single-use, so a fast deterministic
    digest is enough; the stored value is compared, never looked up.
    """
    return hashlib.sha256(otp.encode()).hexdigest()


def otp_matches(otp: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_otp(otp), stored_hash)


# ── Gateway webhook signatures (HMAC-SHA256) ──────────────────

def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)


# ── JWT ───────────────────────────────────────────────────────

def create_jwt(
    subject: str,
    tenant_id: str | None,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    payload = {
        "sub": subject,
        "tid": tenant_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
