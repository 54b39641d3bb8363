from __future__ import annotations

import pytest

from oneclick_core.errors import ConfigValidationError
from oneclick_core.validation import domain, email, not_empty, port, qq_number


@pytest.mark.parametrize("value", ["12345", "123456789", "99999999999", " 123456 "])
def test_qq_number_accepts(value: str) -> None:
    assert qq_number(value) == value.strip()


@pytest.mark.parametrize("value", ["", "abc", "0", "1234", "012345", "123456789012345", "12a45"])
def test_qq_number_rejects(value: str) -> None:
    with pytest.raises(ConfigValidationError):
        qq_number(value)


def test_domain_normalizes() -> None:
    assert domain("https://Cloud.Example.com/login") == "cloud.example.com"
    assert domain("mail.example.org.") == "mail.example.org"
    with pytest.raises(ConfigValidationError):
        domain("localhost")


def test_email_port_and_blank() -> None:
    assert email("me@example.com") == "me@example.com"
    with pytest.raises(ConfigValidationError):
        email("me@localhost")
    assert port("3306") == "3306"
    for bad in ("0", "65536", "http"):
        with pytest.raises(ConfigValidationError):
            port(bad)
    with pytest.raises(ConfigValidationError, match="Token cannot be empty"):
        not_empty("   ", label="Token")
