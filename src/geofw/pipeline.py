"""
geofw.pipeline
~~~~~~~~~~~~~~

The two jobs geofw runs, wired from the individual stages:

* :pyfunc:`refresh_prefixes` – fetch → classify → normalise → write the
  prefix files.
* :pyfunc:`setup_firewall` – read the prefix files → render → apply.

Both take a :class:`~geofw.config.Settings` explicitly.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import requests

from geofw.aggregator import normalize
from geofw.classifier import classify
from geofw.config import Settings
from geofw.defense import nftables as nft_apply
from geofw.defense.sshd import discover_admin_port
from geofw.errors import EmptyAllowListError
from geofw.fetchers import bgptools
from geofw.models import Family, NormalizedBlockSet
from geofw.render.nftables import render
from geofw.storage import read_prefix_file, write_prefix_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    v4: NormalizedBlockSet
    v6: NormalizedBlockSet
    wrote_v4: bool
    wrote_v6: bool


def refresh_prefixes(
    cfg: Settings,
    *,
    session: Optional[requests.Session] = None,
    cancel: Optional[threading.Event] = None,
) -> RefreshResult:
    """Download the routing table and rewrite both prefix files."""
    logger.info("Starting processing for ASNs: %s", cfg.target_asns)

    records = bgptools.fetch(
        cfg.feed_url,
        cfg.user_agent,
        cfg.fetch_attempts,
        delay=cfg.fetch_delay,
        timeout=cfg.fetch_timeout,
        session=session,
        cancel=cancel,
    )
    v4_blocks, v6_blocks = classify(records, cfg.target_asns)

    v4 = normalize(v4_blocks, Family.V4, workers=cfg.aggregate_workers)
    v6 = normalize(v6_blocks, Family.V6, collapse_overlaps=cfg.collapse_v6_overlaps)

    wrote_v4, wrote_v6 = write_prefix_files(v4, v6, cfg.prefix_file_v4, cfg.prefix_file_v6)
    logger.info("Processing complete")
    return RefreshResult(v4, v6, wrote_v4, wrote_v6)


def build_ruleset(cfg: Settings) -> str:
    """
    Render the ruleset from the persisted prefix files.

    Raises
    ------
    EmptyAllowListError
        Neither prefix file holds a single block.
    """
    logger.info("Initializing nftables configuration")
    v4 = read_prefix_file(cfg.prefix_file_v4, Family.V4)
    v6 = read_prefix_file(cfg.prefix_file_v6, Family.V6)
    if not v4 and not v6:
        raise EmptyAllowListError(
            f"prefix lists empty ({cfg.prefix_file_v4}, {cfg.prefix_file_v6}); refusing to build an allow-list"
        )

    port = discover_admin_port(cfg.sshd_config_path, cfg.default_ssh_port)
    return render(v4, v6, port)


def setup_firewall(
    cfg: Settings,
    *,
    firewall: Optional[nft_apply.Firewall] = None,
) -> nft_apply.ApplyResult:
    """Render the ruleset, write it to ``cfg.ruleset_path`` and activate it."""
    document = build_ruleset(cfg)
    if firewall is None:
        firewall = nft_apply.NftablesFirewall(
            nft_bin=cfg.nft_bin,
            systemctl_bin=cfg.systemctl_bin,
            timeout=cfg.command_timeout,
        )

    result = nft_apply.apply(document, cfg.ruleset_path, firewall)
    if result.ok:
        logger.info(
            "nftables setup is complete; only allow-listed networks and SSH can reach this host"
        )
    logger.info("Configuration is saved to %s", cfg.ruleset_path)
    return result
