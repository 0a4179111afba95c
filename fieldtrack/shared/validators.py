"""Shared validation utilities"""

import re
from typing import Optional

from ..errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 2


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Trimmed, lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please enter a valid email address.")

    return email


def validate_password(password: str) -> str:
    if len(password or "") < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")
    return password


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if len(name) < NAME_MIN_LENGTH:
        raise ValueError(f"Name must be at least {NAME_MIN_LENGTH} characters long.")
    return name


def validate_auth_form(
    email: str, password: str, name: Optional[str] = None, is_sign_up: bool = False
) -> str:
    """
    Validate the sign-in / sign-up form in the order the form reports errors.

    Returns the normalized email. Raises ValidationError with the first problem.
    """
    trimmed_email = (email or "").strip()
    if not trimmed_email or not password or (is_sign_up and not name):
        raise ValidationError("All fields are required.")

    try:
        if is_sign_up:
            validate_name(name)
        normalized = validate_email(trimmed_email)
        validate_password(password)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    return normalized


def require_text(value: Optional[str], message: str) -> str:
    """Return the stripped value or raise ValidationError when it is blank."""
    value = (value or "").strip()
    if not value:
        raise ValidationError(message)
    return value
