from __future__ import annotations

import re
import secrets
import string
from collections.abc import Mapping
from typing import Any

from .errors import ValidationError

SERVICE_MAX_CHARS = 100
USERNAME_MAX_CHARS = 100
PASSWORD_MAX_CHARS = 500
STRONG_PASSWORD_MIN_CHARS = 8
SPECIAL_CHARS = '!@#$%^&*(),.?":{}|<>'

_FIELD_LIMITS = {
    "service": SERVICE_MAX_CHARS,
    "username": USERNAME_MAX_CHARS,
    "password": PASSWORD_MAX_CHARS,
}


def missing_required(data: Mapping[str, Any], *, partial: bool = False) -> list[str]:
    """Names of required fields that are absent or blank after trimming."""

    missing: list[str] = []
    for name in _FIELD_LIMITS:
        if partial and name not in data:
            continue
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            missing.append(name)
    return missing


def validate_entry(data: Mapping[str, Any], *, partial: bool = False) -> list[str]:
    errors = [f"{name} is required" for name in missing_required(data, partial=partial)]
    for name, limit in _FIELD_LIMITS.items():
        value = data.get(name)
        if not isinstance(value, str):
            continue
        measured = value if name == "password" else value.strip()
        if len(measured) > limit:
            errors.append(f"{name} must be at most {limit} characters")
    return errors


def ensure_valid(data: Mapping[str, Any], *, partial: bool = False) -> None:
    errors = validate_entry(data, partial=partial)
    if errors:
        raise ValidationError(errors)


def password_strength(password: str) -> tuple[int, list[str]]:
    feedback: list[str] = []
    score = 0
    checks = [
        (
            len(password) >= STRONG_PASSWORD_MIN_CHARS,
            f"use at least {STRONG_PASSWORD_MIN_CHARS} characters",
        ),
        (re.search(r"[A-Z]", password) is not None, "add an uppercase letter"),
        (re.search(r"[a-z]", password) is not None, "add a lowercase letter"),
        (re.search(r"\d", password) is not None, "add a digit"),
        (any(ch in SPECIAL_CHARS for ch in password), "add a special character"),
    ]
    for passed, hint in checks:
        if passed:
            score += 1
        else:
            feedback.append(hint)
    return score, feedback


def generate_password(length: int = 16) -> str:
    if length < 1 or length > PASSWORD_MAX_CHARS:
        raise ValueError(f"length must be between 1 and {PASSWORD_MAX_CHARS}")
    classes = [string.ascii_uppercase, string.ascii_lowercase, string.digits, SPECIAL_CHARS]
    alphabet = "".join(classes)
    chars = [secrets.choice(alphabet) for _ in range(length)]
    if length >= len(classes):
        # One guaranteed character per class, at distinct random positions.
        positions = list(range(length))
        for pool in classes:
            pos = positions.pop(secrets.randbelow(len(positions)))
            chars[pos] = secrets.choice(pool)
    return "".join(chars)
