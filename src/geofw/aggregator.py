"""
geofw.aggregator
~~~~~~~~~~~~~~~~

Normalise the blocks of one address family into a
:class:`~geofw.models.NormalizedBlockSet`.

IPv4 policy
-----------
* shorter than ``/24``: split into ``2 ** (24 - p)`` consecutive ``/24``
  blocks, each address 256 above the previous one.
* exactly ``/24``: kept as is.
* longer than ``/24``: kept at its exact length.  Such a block is dropped
  only when a ``/24`` or a broader long block in the result already covers
  it, so the set never holds overlapping entries.

IPv6 policy
-----------
Exact duplicates are removed.  With ``collapse_overlaps=True`` every block
contained in a broader accepted block is dropped as well.

Decomposition of each block is independent; with ``workers > 1`` it is
fanned out over a thread pool and the partial lists are merged by the
caller after the join.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Sequence, Set

from geofw.models import Family, NetworkBlock, NormalizedBlockSet

logger = logging.getLogger(__name__)

BLOCK_PREFIXLEN = 24
_BLOCK_SIZE = 1 << (32 - BLOCK_PREFIXLEN)


def split_to_24(block: NetworkBlock) -> List[NetworkBlock]:
    """
    Decompose an IPv4 block into ``/24`` blocks.

    Blocks of length ``/24`` or longer are returned unchanged.
    """
    if block.family is not Family.V4:
        raise ValueError(f"{block} is not an IPv4 block")
    if block.prefixlen >= BLOCK_PREFIXLEN:
        return [block]

    count = 1 << (BLOCK_PREFIXLEN - block.prefixlen)
    return [
        NetworkBlock(Family.V4, BLOCK_PREFIXLEN, block.address + i * _BLOCK_SIZE)
        for i in range(count)
    ]


def collapse_covered(blocks: Iterable[NetworkBlock]) -> List[NetworkBlock]:
    """
    Drop every block contained in a broader block of the same input.

    Blocks are visited by ascending prefix length, so the broadest one of
    any nested group wins.
    """
    accepted: List[NetworkBlock] = []
    for block in sorted(set(blocks)):
        if not any(existing.contains(block) for existing in accepted):
            accepted.append(block)
    return accepted


def _drop_covered_long_blocks(merged: Set[NetworkBlock]) -> Set[NetworkBlock]:
    long_blocks = [b for b in merged if b.prefixlen > BLOCK_PREFIXLEN]
    if not long_blocks:
        return merged

    result = {b for b in merged if b.prefixlen <= BLOCK_PREFIXLEN}
    slash24 = {b.address for b in result}
    survivors = [
        block
        for block in collapse_covered(long_blocks)
        if block.address & ~(_BLOCK_SIZE - 1) not in slash24
    ]
    dropped = len(long_blocks) - len(survivors)
    if dropped:
        logger.info(
            "Dropped %d v4 block(s) longer than /%d already covered by a broader block",
            dropped, BLOCK_PREFIXLEN,
        )
    result.update(survivors)
    return result


def _decompose_all(blocks: Sequence[NetworkBlock], workers: int) -> Set[NetworkBlock]:
    merged: Set[NetworkBlock] = set()
    if workers <= 1 or len(blocks) < 2:
        for block in blocks:
            merged.update(split_to_24(block))
        return merged

    # workers only compute; this thread is the single owner of `merged`
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="geofw-split") as pool:
        for part in pool.map(split_to_24, blocks):
            merged.update(part)
    return merged


def normalize(
    blocks: Iterable[NetworkBlock],
    family: Family,
    *,
    workers: int = 1,
    collapse_overlaps: bool = False,
) -> NormalizedBlockSet:
    """
    Aggregate *blocks* of *family* into a canonical, duplicate-free set.

    Parameters
    ----------
    blocks:
        Blocks as classified, in any order.  Blocks of another family raise
        :class:`ValueError`.
    family:
        Address family of the resulting set.
    workers:
        Threads used for IPv4 decomposition; ``1`` runs inline.
    collapse_overlaps:
        IPv6 only: also drop blocks covered by a broader one.
    """
    blocks = list(blocks)
    for block in blocks:
        if block.family is not family:
            raise ValueError(f"{block} is not a {family.label} block")

    if family is Family.V4:
        merged = _drop_covered_long_blocks(_decompose_all(blocks, workers))
    else:
        merged = set(blocks)
        if collapse_overlaps:
            collapsed = set(collapse_covered(merged))
            if len(collapsed) < len(merged):
                logger.info(
                    "Dropped %d v6 block(s) already covered by a broader block",
                    len(merged) - len(collapsed),
                )
            merged = collapsed

    result = NormalizedBlockSet(family, tuple(merged))
    logger.info(
        "Normalised %d %s input blocks into %d entries",
        len(blocks), family.label, len(result),
    )
    return result
