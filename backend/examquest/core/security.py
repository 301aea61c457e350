from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from pwdlib import PasswordHash

password_hasher = PasswordHash.recommended()

ACCESS_PURPOSE = "access"
CONFIRM_EMAIL_PURPOSE = "confirm_email"
PASSWORD_RESET_PURPOSE = "password_reset"


def hash_password(plain_password: str) -> str:
    return password_hasher.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_hasher.verify(plain_password, hashed_password)


def create_access_token(
    *,
    subject: str,
    secret_key: str,
    algorithm: str,
    expires_minutes: int,
    purpose: str = ACCESS_PURPOSE,
) -> str:
    expires_at = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": subject,
        "exp": expires_at,
        "purpose": purpose,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_access_token(
    *,
    token: str,
    secret_key: str,
    algorithm: str,
    purpose: str = ACCESS_PURPOSE,
) -> dict:
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if payload.get("purpose", ACCESS_PURPOSE) != purpose:
        raise ValueError("Token purpose mismatch")
    return payload
