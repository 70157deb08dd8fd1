"""
Shared fixtures for the geofw test-suite.

Everything runs offline: HTTP goes through the ``requests_mock`` fixture
(from the *requests-mock* plugin), external commands through
:class:`FakeFirewall`, and files live under ``tmp_path``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

import pytest

from geofw.config import Settings
from geofw.defense.nftables import CommandResult

FEED_URL = "https://bgp.example.test/table.jsonl"


class FakeFirewall:
    """Records every call; return codes are configurable per step."""

    def __init__(self, *, load_rc: int = 0, enable_rc: int = 0, verify_rc: int = 0) -> None:
        self.rc: Dict[str, int] = {"load": load_rc, "enable": enable_rc, "verify": verify_rc}
        self.calls: List[str] = []
        self.loaded_text: str | None = None

    def _result(self, step: str, args: List[str], stdout: str = "") -> CommandResult:
        self.calls.append(step)
        rc = self.rc[step]
        return CommandResult(args, rc, stdout if rc == 0 else "", "" if rc == 0 else f"{step} exploded")

    def load(self, path: Path) -> CommandResult:
        self.loaded_text = Path(path).read_text()
        return self._result("load", ["nft", "-f", str(path)])

    def enable(self) -> CommandResult:
        return self._result("enable", ["systemctl", "enable", "--now", "nftables"])

    def verify(self) -> CommandResult:
        return self._result("verify", ["nft", "list", "ruleset"], stdout="table inet filter {}\n")


def jsonl(*records) -> str:
    return "".join(json.dumps(r) + "\n" for r in records)


@pytest.fixture
def fake_firewall() -> FakeFirewall:
    return FakeFirewall()


@pytest.fixture
def cfg(tmp_path: Path) -> Settings:
    """Settings pointing every path into *tmp_path*."""
    return Settings(
        feed_url=FEED_URL,
        user_agent="geofw-tests - tests@example.org",
        fetch_attempts=3,
        fetch_delay=0,
        fetch_timeout=5,
        target_asns=[64500, 64501],
        prefix_file_v4=tmp_path / "prefixes_v4.txt",
        prefix_file_v6=tmp_path / "prefixes_v6.txt",
        ruleset_path=tmp_path / "nftables.conf",
        sshd_config_path=tmp_path / "sshd_config",
        nft_bin=str(tmp_path / "bin" / "nft"),
        systemctl_bin=str(tmp_path / "bin" / "systemctl"),
    )


@pytest.fixture
def sample_table() -> str:
    """A small routing table: two target ASNs, one foreign ASN, mixed families."""
    return jsonl(
        {"CIDR": "198.51.100.0/23", "ASN": 64500, "Hits": 10},
        {"CIDR": "203.0.113.0/24", "ASN": 64501, "Hits": 3},
        {"CIDR": "192.0.2.0/24", "ASN": 65000, "Hits": 99},
        {"CIDR": "2001:db8::/32", "ASN": 64500, "Hits": 7},
        {"CIDR": "2001:db8::/32", "ASN": 64501, "Hits": 1},
        {"CIDR": "198.51.100.0/24", "ASN": 64501, "Hits": 2},
    )
