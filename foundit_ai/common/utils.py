import secrets
import string
import time
import uuid

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def new_id() -> str:
    return uuid.uuid4().hex[:9]


def now_ms() -> int:
    return int(time.time() * 1000)


def handover_code(length: int = 6) -> str:
    """Short upper-case alphanumeric code for the physical exchange."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def normalize_email(email: str) -> str:
    """Normalize email address for consistent storage"""
    return email.lower().strip()
