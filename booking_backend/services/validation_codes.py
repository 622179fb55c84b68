import re
import secrets
import string

from booking_backend.core import config

CODE_ALPHABET = string.ascii_uppercase + string.digits

_CODE_PATTERN = re.compile(r'^[A-Z0-9]+$')


def generate_validation_code(length: int | None = None) -> str:
    if length is None:
        length = config.VALIDATION_CODE_LENGTH
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str | None) -> str:
    return (code or '').strip().upper()


def is_valid_code_format(code: str | None, length: int | None = None) -> bool:
    normalized = normalize_code(code)
    if length is None:
        length = config.VALIDATION_CODE_LENGTH
    return len(normalized) == length and bool(_CODE_PATTERN.match(normalized))


def codes_match(provided: str | None, stored: str | None) -> bool:
    """Case-insensitive, constant-time comparison of two validation codes."""
    stored = normalize_code(stored)
    if not stored or not stored.isascii():
        return False
    if not is_valid_code_format(provided, len(stored)):
        return False
    return secrets.compare_digest(normalize_code(provided), stored)
