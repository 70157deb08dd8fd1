"""
geofw.config
~~~~~~~~~~~~

Centralised runtime configuration for **geofw**.

The module leverages *Pydantic*'s `BaseSettings` so that every option can
be overridden via ``GEOFW_*`` environment variables **or** an optional
`.env` file at project root.  Pipeline functions receive a
:class:`Settings` instance explicitly, which keeps them easy to test.

Typical usage
-------------

>>> from geofw.config import settings
>>> print(settings.target_asns)
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from geofw.defense.nftables import NFT_BIN, SYSTEMCTL_BIN

# Operators announcing Iranian address space, as deployed originally.
DEFAULT_ASNS: List[int] = [
    197207, 44244, 25184, 41689, 12880, 49100, 41881, 50810,
    47330, 48159, 58224, 42337, 24631, 39501, 51469, 205647,
    31549, 57218, 25124, 42440, 60976, 16322,
]

# -----------------------------------------------------------------------------
# Settings Model
# -----------------------------------------------------------------------------


class Settings(BaseSettings):
    # ------------------------------------------------------------------ #
    # Upstream feed
    # ------------------------------------------------------------------ #
    feed_url: str = Field(
        "https://bgp.tools/table.jsonl",
        description="Newline-delimited JSON routing table snapshot.",
    )
    user_agent: str = Field(
        "geofw bgp.tools - admin@example.org",
        min_length=1,
        description="Identifying User-Agent; bgp.tools rejects anonymous clients.",
    )
    fetch_attempts: int = Field(3, ge=1, le=20)
    fetch_delay: float = Field(2.0, ge=0, description="Seconds between attempts.")
    fetch_timeout: float = Field(60.0, gt=0, description="Per-request network timeout.")

    # ------------------------------------------------------------------ #
    # Filtering / aggregation
    # ------------------------------------------------------------------ #
    target_asns: Annotated[List[int], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ASNS),
        description="ASNs whose prefixes are allowed, comma-separated or a JSON list.",
    )
    aggregate_workers: int = Field(1, ge=1, le=64)
    collapse_v6_overlaps: bool = Field(
        False, description="Drop IPv6 blocks covered by a broader accepted block."
    )

    # ------------------------------------------------------------------ #
    # Files
    # ------------------------------------------------------------------ #
    prefix_file_v4: Path = Field(Path("ir_prefixes_v4.txt"))
    prefix_file_v6: Path = Field(Path("ir_prefixes_v6.txt"))
    ruleset_path: Path = Field(Path("/etc/nftables.conf"))
    sshd_config_path: Path = Field(Path("/etc/ssh/sshd_config"))
    default_ssh_port: int = Field(22, ge=1, le=65535)

    # ------------------------------------------------------------------ #
    # External commands
    # ------------------------------------------------------------------ #
    nft_bin: str = Field(NFT_BIN, description="Name on PATH or absolute path.")
    systemctl_bin: str = Field(SYSTEMCTL_BIN, description="Name on PATH or absolute path.")
    command_timeout: float = Field(60.0, gt=0)

    # ------------------------------------------------------------------ #
    # Scheduler / misc
    # ------------------------------------------------------------------ #
    refresh_time: str = Field(
        "00:00", description="HH:MM (UTC) for the built-in daily prefix refresh."
    )
    debug: bool = False
    log_file: Optional[Path] = None

    # ------------------------------------------------------------------ #
    # Model Config
    # ------------------------------------------------------------------ #
    model_config = SettingsConfigDict(
        env_prefix="GEOFW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Validators
    # ------------------------------------------------------------------ #
    @field_validator("target_asns", mode="before")
    @classmethod
    def _split_asns(cls, v):
        if isinstance(v, str) and v.strip().startswith("["):
            v = json.loads(v)
        if isinstance(v, str):
            return [int(a.strip().upper().removeprefix("AS")) for a in v.split(",") if a.strip()]
        if isinstance(v, int):
            return [v]
        return v

    @field_validator("target_asns")
    @classmethod
    def _require_asns(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("at least one target ASN is required")
        return v

    @field_validator("refresh_time", mode="before")
    @classmethod
    def _parse_refresh_time(cls, v):
        if isinstance(v, str):
            v = v.strip()
            hour, _, minute = v.partition(":")
            if not (hour.isdigit() and minute.isdigit() and int(hour) < 24 and int(minute) < 60):
                raise ValueError(f"refresh_time must be HH:MM, got {v!r}")
        return v

    @field_validator("debug", "collapse_v6_overlaps", mode="before")
    @classmethod
    def _parse_bool(cls, v):
        """
        Convert common truthy / falsy strings to real booleans so that
        ``GEOFW_DEBUG=off`` is parsed as False.
        """
        if isinstance(v, str):
            return v.strip().lower() in {"1", "true", "yes", "y", "on"}
        return bool(v)


# -----------------------------------------------------------------------------
# Singleton / Cached accessor
# -----------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton instance of :class:`Settings`."""
    return Settings()


# Alias for convenience import style:  from geofw.config import settings
settings: Settings = get_settings()
