"""
End-to-end tests for :mod:`geofw.pipeline`.

The feed is served by ``requests_mock``, the firewall is a
:class:`conftest.FakeFirewall`, and every file lives in ``tmp_path``.
"""

from __future__ import annotations

import pytest

from conftest import FEED_URL, FakeFirewall, jsonl
from geofw.errors import EmptyAllowListError, FetchError, RulesetLoadError
from geofw.pipeline import build_ruleset, refresh_prefixes, setup_firewall


# --------------------------------------------------------------------------- #
#  refresh_prefixes
# --------------------------------------------------------------------------- #
def test_refresh_writes_normalised_files(requests_mock, cfg, sample_table):
    requests_mock.get(FEED_URL, text=sample_table)

    result = refresh_prefixes(cfg)

    assert cfg.prefix_file_v4.read_text().splitlines() == [
        "198.51.100.0/24",
        "198.51.101.0/24",
        "203.0.113.0/24",
    ]
    assert cfg.prefix_file_v6.read_text() == "2001:db8::/32\n"
    assert result.wrote_v4 and result.wrote_v6
    assert len(result.v4) == 3


def test_single_record_for_single_asn(requests_mock, cfg):
    cfg = cfg.model_copy(update={"target_asns": [64500]})
    requests_mock.get(FEED_URL, text=jsonl({"CIDR": "198.51.100.0/23", "ASN": 64500}))

    result = refresh_prefixes(cfg)

    assert list(result.v4.lines()) == ["198.51.100.0/24", "198.51.101.0/24"]
    assert not result.v6
    assert not cfg.prefix_file_v6.exists()


def test_malformed_line_does_not_abort_refresh(requests_mock, cfg, caplog):
    body = "{broken json\n" + jsonl({"CIDR": "203.0.113.0/24", "ASN": 64501})
    requests_mock.get(FEED_URL, text=body)

    refresh_prefixes(cfg)

    assert cfg.prefix_file_v4.read_text() == "203.0.113.0/24\n"
    assert "Skipping invalid JSON line" in caplog.text


def test_failed_fetch_keeps_previous_files(requests_mock, cfg):
    cfg.prefix_file_v4.write_text("192.0.2.0/24\n")
    requests_mock.get(FEED_URL, status_code=503)

    with pytest.raises(FetchError):
        refresh_prefixes(cfg)

    assert requests_mock.call_count == cfg.fetch_attempts
    assert cfg.prefix_file_v4.read_text() == "192.0.2.0/24\n"
    assert not cfg.prefix_file_v6.exists()


def test_refresh_is_idempotent(requests_mock, cfg, sample_table):
    requests_mock.get(FEED_URL, text=sample_table)

    refresh_prefixes(cfg)
    first = cfg.prefix_file_v4.read_bytes(), cfg.prefix_file_v6.read_bytes()
    refresh_prefixes(cfg)
    assert (cfg.prefix_file_v4.read_bytes(), cfg.prefix_file_v6.read_bytes()) == first


# --------------------------------------------------------------------------- #
#  build_ruleset / setup_firewall
# --------------------------------------------------------------------------- #
def test_empty_prefix_files_are_fatal(cfg):
    fw = FakeFirewall()
    with pytest.raises(EmptyAllowListError) as info:
        setup_firewall(cfg, firewall=fw)

    assert info.value.stage == "render"
    assert not cfg.ruleset_path.exists()
    assert fw.calls == []


def test_empty_but_present_files_are_fatal(cfg):
    cfg.prefix_file_v4.write_text("")
    cfg.prefix_file_v6.write_text("\n")
    with pytest.raises(EmptyAllowListError):
        build_ruleset(cfg)


def test_one_family_missing_is_fine(cfg):
    cfg.prefix_file_v6.write_text("2001:db8::/32\n")
    doc = build_ruleset(cfg)
    assert "allowed_ipv6" in doc
    assert "allowed_ipv4" not in doc


def test_sshd_port_is_used_in_ruleset(cfg, fake_firewall):
    cfg.prefix_file_v4.write_text("198.51.100.0/24\n")
    cfg.sshd_config_path.write_text("Port 2222\n")

    result = setup_firewall(cfg, firewall=fake_firewall)

    text = cfg.ruleset_path.read_text()
    assert "tcp dport 2222 accept" in text
    assert "tcp dport 22 accept" not in text
    assert result.ok
    assert fake_firewall.calls == ["load", "enable", "verify"]


def test_default_port_without_sshd_config(cfg, fake_firewall):
    cfg.prefix_file_v4.write_text("198.51.100.0/24\n")
    setup_firewall(cfg, firewall=fake_firewall)
    assert "tcp dport 22 accept" in cfg.ruleset_path.read_text()


def test_load_failure_stops_before_enable(cfg):
    cfg.prefix_file_v4.write_text("198.51.100.0/24\n")
    fw = FakeFirewall(load_rc=1)

    with pytest.raises(RulesetLoadError):
        setup_firewall(cfg, firewall=fw)

    assert fw.calls == ["load"]
    assert "enable" not in fw.calls


def test_fetch_then_setup(requests_mock, cfg, sample_table, fake_firewall):
    requests_mock.get(FEED_URL, text=sample_table)

    refresh_prefixes(cfg)
    setup_firewall(cfg, firewall=fake_firewall)

    text = cfg.ruleset_path.read_text()
    assert "\t\t\t198.51.100.0/24,\n\t\t\t198.51.101.0/24,\n\t\t\t203.0.113.0/24\n" in text
    assert "\t\t\t2001:db8::/32\n" in text
    assert "192.0.2.0" not in text
