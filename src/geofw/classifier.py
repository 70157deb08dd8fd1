"""
geofw.classifier
~~~~~~~~~~~~~~~~

Turn raw feed records into per-family block lists for the target ASNs.

Ordering is left untouched (feed order); canonical ordering happens in
:mod:`geofw.aggregator`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Tuple

from geofw.errors import MalformedRecordError
from geofw.models import Family, NetworkBlock, PrefixRecord

logger = logging.getLogger(__name__)


def classify(
    records: Iterable[Mapping[str, Any]],
    target_asns: Iterable[int],
) -> Tuple[List[NetworkBlock], List[NetworkBlock]]:
    """
    Split the blocks announced by *target_asns* into ``(v4, v6)`` lists.

    Records that cannot be parsed are logged and skipped.
    """
    wanted = frozenset(target_asns)
    v4: List[NetworkBlock] = []
    v6: List[NetworkBlock] = []
    skipped = 0

    for raw in records:
        try:
            record = PrefixRecord.from_raw(raw)
        except MalformedRecordError as exc:
            skipped += 1
            logger.warning("Skipping record: %s", exc)
            continue

        if record.asn not in wanted:
            continue
        if record.block.family is Family.V4:
            v4.append(record.block)
        elif record.block.family is Family.V6:
            v6.append(record.block)

    if skipped:
        logger.warning("Skipped %d malformed record(s)", skipped)
    logger.info(
        "Matched %d IPv4 and %d IPv6 blocks for %d ASNs", len(v4), len(v6), len(wanted)
    )
    return v4, v6
