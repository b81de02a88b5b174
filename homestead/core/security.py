"""Security utilities: password hashing, invitation tokens, and JWT helpers."""

import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from homestead.core.config import get_settings

settings = get_settings()

# ── Password hashing (Argon2) ────────────────────────────────

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ── Invitation tokens ─────────────────────────────────────────

def generate_verification_token() -> str:
    """Opaque single-use token embedded in the invitation link."""
    return secrets.token_urlsafe(32)


def tokens_match(provided: str, stored: str) -> bool:
    """Exact comparison, constant time."""
    return secrets.compare_digest(provided.encode(), stored.encode())


# ── JWT ───────────────────────────────────────────────────────

def create_jwt(subject: str, role: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    payload = {
        "sub": subject,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
