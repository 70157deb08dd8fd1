"""Unit-tests for :func:`geofw.classifier.classify`."""

from __future__ import annotations

import json
import logging

from geofw.classifier import classify


def test_classify_filters_by_asn_and_family(sample_table):
    records = [json.loads(line) for line in sample_table.splitlines()]
    v4, v6 = classify(records, [64500, 64501])

    # feed order is kept, no canonicalisation here
    assert [str(b) for b in v4] == ["198.51.100.0/23", "203.0.113.0/24", "198.51.100.0/24"]
    assert [str(b) for b in v6] == ["2001:db8::/32", "2001:db8::/32"]


def test_classify_with_unknown_asns_returns_empty_lists(sample_table):
    records = [json.loads(line) for line in sample_table.splitlines()]
    assert classify(records, [1]) == ([], [])


def test_classify_accepts_any_iterable_of_asns():
    records = [{"CIDR": "192.0.2.0/24", "ASN": 64500}]
    v4, _ = classify(iter(records), (asn for asn in [64500]))
    assert [str(b) for b in v4] == ["192.0.2.0/24"]


def test_classify_skips_malformed_records_with_warning(caplog):
    records = [
        {"CIDR": "not-a-cidr", "ASN": 64500},
        {"CIDR": "192.0.2.0/24"},
        {"CIDR": "192.0.2.0/24", "ASN": 64500},
    ]
    with caplog.at_level(logging.WARNING, logger="geofw"):
        v4, v6 = classify(records, [64500])

    assert [str(b) for b in v4] == ["192.0.2.0/24"]
    assert v6 == []
    assert "not-a-cidr" in caplog.text
    assert "Skipped 2 malformed" in caplog.text
