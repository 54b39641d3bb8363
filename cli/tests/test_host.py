from __future__ import annotations

import pytest

from oneclick_core.errors import PreconditionError
from oneclick_core.host import invoking_user, parse_os_release, read_os_release, require_root, require_supported_os

UBUNTU = 'NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n'
MINT = 'ID=linuxmint\nID_LIKE="ubuntu debian"\nPRETTY_NAME="Linux Mint 21"\n'
CENTOS = 'ID="centos"\nID_LIKE="rhel fedora"\nPRETTY_NAME="CentOS Stream 9"\n'


@pytest.mark.parametrize(
    ("content", "supported"),
    [(UBUNTU, True), (MINT, True), (CENTOS, False), ("", False)],
)
def test_parse_os_release_support(content: str, supported: bool) -> None:
    assert parse_os_release(content).supported is supported


def test_parse_os_release_fields() -> None:
    release = parse_os_release(UBUNTU)
    assert release.id == "ubuntu"
    assert release.pretty_name == "Ubuntu 22.04.4 LTS"
    assert parse_os_release(MINT).id_like == ("ubuntu", "debian")


def test_require_root() -> None:
    require_root(lambda: 0)
    with pytest.raises(PreconditionError) as exc:
        require_root(lambda: 1000, script="oneclick deploy gemini")
    assert exc.value.hint == "sudo oneclick deploy gemini"


def test_require_supported_os(tmp_path) -> None:
    path = tmp_path / "os-release"
    path.write_text(UBUNTU, encoding="utf-8")
    assert require_supported_os(path).id == "ubuntu"

    path.write_text(CENTOS, encoding="utf-8")
    with pytest.raises(PreconditionError, match="CentOS Stream 9"):
        require_supported_os(path)


def test_missing_os_release(tmp_path) -> None:
    with pytest.raises(PreconditionError):
        read_os_release(tmp_path / "absent")


def test_invoking_user() -> None:
    assert invoking_user({"SUDO_USER": "alice", "USER": "root"}) == "alice"
    assert invoking_user({"USER": "bob"}) == "bob"
    assert invoking_user({}) == "root"
