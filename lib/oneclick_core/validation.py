from __future__ import annotations

import re

from .errors import ConfigValidationError

_QQ_RE = re.compile(r"^[1-9][0-9]{4,10}$")
_DOMAIN_RE = re.compile(r"^(?=.{1,253}$)([A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def qq_number(value: str) -> str:
    text = (value or "").strip()
    if not _QQ_RE.match(text):
        raise ConfigValidationError("Invalid QQ number: expected 5-11 digits without a leading zero.")
    return text


def not_empty(value: str, *, label: str = "Value") -> str:
    text = (value or "").strip()
    if not text:
        raise ConfigValidationError(f"{label} cannot be empty.")
    return text


def domain(value: str) -> str:
    text = (value or "").strip().lower().rstrip(".")
    if text.startswith("http://") or text.startswith("https://"):
        text = text.split("://", 1)[1].split("/", 1)[0]
    if not _DOMAIN_RE.match(text):
        raise ConfigValidationError(f"Invalid domain: {value!r}.")
    return text


def email(value: str) -> str:
    text = (value or "").strip()
    if not _EMAIL_RE.match(text):
        raise ConfigValidationError("Email must look like name@example.com.")
    return text


def port(value: str) -> str:
    text = (value or "").strip()
    if not text.isdigit() or not 0 < int(text) < 65536:
        raise ConfigValidationError(f"Invalid port: {value!r}.")
    return text
