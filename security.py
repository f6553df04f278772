# security.py
# Password hashing, access tokens and email checks.
import secrets
from typing import Optional

import bcrypt
from email_validator import EmailNotValidError, validate_email


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def new_access_token() -> str:
    """256 hex characters, i.e. 128 random bytes."""
    return secrets.token_hex(128)


def validate_email_address(email: str) -> Optional[str]:
    """Return the normalized address, or None if it isn't a valid email."""
    if not email:
        return None
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError:
        return None
