"""
geofw.fetchers.bgptools
~~~~~~~~~~~~~~~~~~~~~~~

Download the **bgp.tools** routing table dump (``table.jsonl``).

The dump is newline-delimited JSON, one announced prefix per line::

    {"CIDR": "198.51.100.0/23", "ASN": 64500, "Hits": 812}

bgp.tools refuses requests without an identifying ``User-Agent``, so one is
mandatory here.  The body is streamed and decoded line by line; a broken
line is logged and skipped instead of failing the whole download.

Public API
----------
fetch(source, user_agent, attempts, ...) -> list[dict]
    Decoded records, in feed order.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from geofw.errors import FetchCancelled, FetchError
from geofw.utils.retry import RetryCancelled, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_URL: str = "https://bgp.tools/table.jsonl"


class _BadStatus(requests.RequestException):
    """Any answer other than 200 OK."""


def _download(
    session: requests.Session,
    source: str,
    headers: Dict[str, str],
    timeout: float,
    cancel: Optional[threading.Event],
) -> List[Dict[str, Any]]:
    logger.debug("GET %s", source)
    records: List[Dict[str, Any]] = []
    dropped = 0

    with session.get(source, headers=headers, stream=True, timeout=timeout) as resp:
        if resp.status_code != requests.codes.ok:
            raise _BadStatus(f"received non-200 status code: {resp.status_code}")

        for lineno, line in enumerate(resp.iter_lines(decode_unicode=True), 1):
            if cancel is not None and cancel.is_set():
                raise FetchCancelled(f"fetch of {source} cancelled at line {lineno}")
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                dropped += 1
                logger.warning("Skipping invalid JSON line %d: %s", lineno, exc)
                continue
            if not isinstance(record, dict):
                dropped += 1
                logger.warning("Skipping line %d: expected an object, got %s", lineno, type(record).__name__)
                continue
            records.append(record)

    if dropped:
        logger.warning("Dropped %d malformed line(s) from %s", dropped, source)
    return records


def fetch(
    source: str = DEFAULT_URL,
    user_agent: str = "",
    attempts: int = 3,
    *,
    delay: float = 2.0,
    timeout: float = 60.0,
    session: Optional[requests.Session] = None,
    cancel: Optional[threading.Event] = None,
) -> List[Dict[str, Any]]:
    """
    Fetch and decode the routing table with retry.

    Parameters
    ----------
    source:
        URL of the JSONL dump.
    user_agent:
        Identifying ``User-Agent`` header (required).
    attempts:
        Total attempts before giving up.
    delay:
        Fixed pause in seconds between attempts.
    timeout:
        Per-request connect/read timeout in seconds.
    session:
        Optional :class:`requests.Session` to reuse; a private one is
        created and closed otherwise.
    cancel:
        Optional event; setting it aborts the in-flight download and stops
        retrying.

    Raises
    ------
    FetchError
        All attempts failed; chained to the last underlying error.
    FetchCancelled
        *cancel* was set.
    """
    if not user_agent:
        raise ValueError("an identifying User-Agent is required")

    own_session = session is None
    sess = session or requests.Session()
    headers = {"User-Agent": user_agent}
    try:
        records = call_with_retry(
            lambda: _download(sess, source, headers, timeout, cancel),
            attempts=attempts,
            delay=delay,
            exceptions=(requests.RequestException,),
            cancel=cancel,
            description=f"fetch {source}",
        )
    except RetryCancelled as exc:
        raise FetchCancelled(str(exc)) from exc
    except requests.RequestException as exc:
        raise FetchError(
            f"all {attempts} fetch attempts for {source} failed: {exc}", attempts=attempts
        ) from exc
    finally:
        if own_session:
            sess.close()

    logger.info("Fetched %d records from %s", len(records), source)
    return records
