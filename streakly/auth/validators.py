"""Credential checks run before anything is sent to the gateway."""

import re

from streakly.errors import ValidationFailed

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
MIN_PASSWORD_LENGTH = 6


def validate_email(email: str) -> str:
    """Return the email unchanged, or raise ValidationFailed."""
    if not email:
        raise ValidationFailed("Email is required", field="email")
    if not EMAIL_PATTERN.fullmatch(email):
        raise ValidationFailed("Email is malformed", field="email")
    return email


def validate_password(password: str) -> str:
    """Return the password unchanged, or raise ValidationFailed."""
    if not password:
        raise ValidationFailed("Password is required", field="password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f"Password shorter than {MIN_PASSWORD_LENGTH} characters",
            field="password",
        )
    return password


def validate_credentials(email: str, password: str):
    """Check both fields; the email error wins when both are bad."""
    validate_email(email)
    validate_password(password)
