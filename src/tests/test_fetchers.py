"""
Unit tests for the routing table fetcher.

HTTP is served by the ``requests_mock`` fixture so the suite runs offline.
The live feed is only touched by the opt-in ``network`` test.
"""

from __future__ import annotations

import logging
import threading

import pytest
import requests

from conftest import FEED_URL, jsonl
from geofw.errors import FetchCancelled, FetchError
from geofw.fetchers import bgptools

UA = "geofw-tests - tests@example.org"


def _fetch(**kwargs):
    kwargs.setdefault("delay", 0)
    return bgptools.fetch(FEED_URL, UA, kwargs.pop("attempts", 3), **kwargs)


# --------------------------------------------------------------------------- #
# Parsing                                                                     #
# --------------------------------------------------------------------------- #


def test_fetch_decodes_each_line(requests_mock, sample_table):
    requests_mock.get(FEED_URL, text=sample_table)

    records = _fetch()
    assert len(records) == 6
    assert records[0] == {"CIDR": "198.51.100.0/23", "ASN": 64500, "Hits": 10}
    assert requests_mock.last_request.headers["User-Agent"] == UA


def test_malformed_line_is_dropped_with_warning(requests_mock, caplog):
    """A broken line is skipped; the valid one after it still comes through."""
    body = '{"CIDR": "198.51.100.0/23", "ASN":\n' + jsonl({"CIDR": "203.0.113.0/24", "ASN": 64500})
    requests_mock.get(FEED_URL, text=body)

    with caplog.at_level(logging.WARNING, logger="geofw"):
        records = _fetch()

    assert records == [{"CIDR": "203.0.113.0/24", "ASN": 64500}]
    assert "Skipping invalid JSON line 1" in caplog.text
    assert requests_mock.call_count == 1


def test_blank_and_non_object_lines(requests_mock, caplog):
    body = "\n[1, 2]\n" + jsonl({"CIDR": "203.0.113.0/24", "ASN": 64500}) + "\n"
    requests_mock.get(FEED_URL, text=body)

    with caplog.at_level(logging.WARNING, logger="geofw"):
        records = _fetch()

    assert len(records) == 1
    assert "expected an object" in caplog.text


def test_user_agent_is_mandatory():
    with pytest.raises(ValueError):
        bgptools.fetch(FEED_URL, "", 1)


# --------------------------------------------------------------------------- #
# Retry                                                                       #
# --------------------------------------------------------------------------- #


def test_retries_after_bad_status(requests_mock, sample_table):
    requests_mock.get(
        FEED_URL,
        [
            {"status_code": 503, "text": "busy"},
            {"exc": requests.exceptions.ConnectionError},
            {"status_code": 200, "text": sample_table},
        ],
    )

    records = _fetch(attempts=3)
    assert len(records) == 6
    assert requests_mock.call_count == 3


def test_gives_up_after_max_attempts(requests_mock):
    requests_mock.get(FEED_URL, status_code=500, text="oops")

    with pytest.raises(FetchError) as info:
        _fetch(attempts=2)

    assert requests_mock.call_count == 2
    assert info.value.attempts == 2
    assert info.value.stage == "fetch"
    assert "500" in str(info.value.__cause__)


def test_non_200_success_status_is_retryable(requests_mock, sample_table):
    requests_mock.get(
        FEED_URL,
        [{"status_code": 204, "text": ""}, {"status_code": 200, "text": sample_table}],
    )
    assert len(_fetch()) == 6


# --------------------------------------------------------------------------- #
# Cancellation                                                                #
# --------------------------------------------------------------------------- #


def test_cancelled_before_first_attempt(requests_mock, sample_table):
    requests_mock.get(FEED_URL, text=sample_table)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(FetchCancelled):
        _fetch(cancel=cancel)
    assert requests_mock.call_count == 0


def test_cancel_during_backoff_stops_retrying(requests_mock):
    cancel = threading.Event()

    def _fail_and_cancel(request, context):
        cancel.set()
        context.status_code = 502
        return "bad gateway"

    requests_mock.get(FEED_URL, text=_fail_and_cancel)

    with pytest.raises(FetchCancelled):
        _fetch(attempts=5, delay=30, cancel=cancel)
    assert requests_mock.call_count == 1


# --------------------------------------------------------------------------- #
# Live feed (opt-in)                                                          #
# --------------------------------------------------------------------------- #


@pytest.mark.network
def test_bgptools_online():
    """
    Smoke-test against the real bgp.tools dump.

    Opt in with::

        pytest -m network
    """
    records = bgptools.fetch(bgptools.DEFAULT_URL, "geofw smoke test - admin@example.org", 1)
    assert records
    assert {"CIDR", "ASN"} <= set(records[0])
