"""
geofw.models
~~~~~~~~~~~~

Value types flowing through the pipeline.

* :class:`NetworkBlock` – one CIDR block, stored as an integer address so
  that splitting and containment are plain integer arithmetic.
* :class:`PrefixRecord` – a block together with the ASN announcing it.
* :class:`NormalizedBlockSet` – unique blocks of one family in canonical
  order, the unit that is persisted and rendered.

Canonical order is ``(address bit width, prefix length, numeric address)``.
:class:`Family` is an ``IntEnum`` whose values sort the same way as the bit
widths, so the dataclass field order of :class:`NetworkBlock` *is* the
canonical comparator.
"""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Tuple

from geofw.errors import MalformedRecordError


class Family(enum.IntEnum):
    V4 = 4
    V6 = 6

    @property
    def bit_width(self) -> int:
        return 32 if self is Family.V4 else 128

    @property
    def label(self) -> str:
        return "v4" if self is Family.V4 else "v6"


@dataclass(frozen=True, slots=True, order=True)
class NetworkBlock:
    """A CIDR block. Field order defines the canonical sort."""

    family: Family
    prefixlen: int
    address: int

    def __post_init__(self) -> None:
        width = self.family.bit_width
        if not 0 <= self.prefixlen <= width:
            raise ValueError(f"prefix length {self.prefixlen} out of range for {self.family.label}")
        if not 0 <= self.address < (1 << width):
            raise ValueError(f"address {self.address} out of range for {self.family.label}")
        if self.address & self.hostmask:
            addr_cls = ipaddress.IPv4Address if self.family is Family.V4 else ipaddress.IPv6Address
            raise ValueError(f"host bits set in {addr_cls(self.address)}/{self.prefixlen}")

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #
    @classmethod
    def parse(cls, text: str) -> "NetworkBlock":
        """
        Parse a CIDR literal such as ``198.51.100.0/23``.

        Host bits are masked off, so ``10.1.2.3/8`` becomes ``10.0.0.0/8``.
        Raises :class:`ValueError` on anything that is not a CIDR.
        """
        if not isinstance(text, str) or "/" not in text:
            raise ValueError(f"not a CIDR literal: {text!r}")
        net = ipaddress.ip_network(text.strip(), strict=False)
        return cls.from_network(net)

    @classmethod
    def from_network(cls, net: ipaddress.IPv4Network | ipaddress.IPv6Network) -> "NetworkBlock":
        family = Family.V4 if net.version == 4 else Family.V6
        return cls(family, net.prefixlen, int(net.network_address))

    # ------------------------------------------------------------------ #
    # Arithmetic helpers
    # ------------------------------------------------------------------ #
    @property
    def hostmask(self) -> int:
        return (1 << (self.family.bit_width - self.prefixlen)) - 1

    @property
    def last_address(self) -> int:
        return self.address | self.hostmask

    @property
    def network(self) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
        if self.family is Family.V4:
            return ipaddress.IPv4Network((self.address, self.prefixlen))
        return ipaddress.IPv6Network((self.address, self.prefixlen))

    def contains_address(self, address: int) -> bool:
        return self.address <= address <= self.last_address

    def contains(self, other: "NetworkBlock") -> bool:
        """True if *other* lies entirely inside this block."""
        return (
            self.family is other.family
            and self.prefixlen <= other.prefixlen
            and self.contains_address(other.address)
        )

    def overlaps(self, other: "NetworkBlock") -> bool:
        if self.family is not other.family:
            return False
        return self.contains_address(other.address) or other.contains_address(self.address)

    def __str__(self) -> str:
        return str(self.network)


@dataclass(frozen=True, slots=True)
class PrefixRecord:
    """One announced block and its origin ASN."""

    block: NetworkBlock
    asn: int

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "PrefixRecord":
        """Build a record from one decoded feed line (``{"CIDR": ..., "ASN": ...}``)."""
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(f"record is not an object: {raw!r}")

        cidr = raw.get("CIDR")
        asn = raw.get("ASN")
        # bool is an int subclass; reject it explicitly
        if not isinstance(asn, int) or isinstance(asn, bool):
            raise MalformedRecordError(f"invalid ASN {asn!r} for {cidr!r}")
        try:
            block = NetworkBlock.parse(cidr)
        except ValueError as exc:
            raise MalformedRecordError(f"invalid CIDR {cidr!r}: {exc}") from exc
        return cls(block, asn)


@dataclass(frozen=True)
class NormalizedBlockSet:
    """
    Unique blocks of a single family, always held in canonical order.

    Whatever iterable is passed as *blocks* is deduplicated and sorted on
    construction, so two sets with the same members compare equal and
    iterate identically.
    """

    family: Family
    blocks: Tuple[NetworkBlock, ...] = field(default=())

    def __post_init__(self) -> None:
        unique = set(self.blocks)
        for block in unique:
            if block.family is not self.family:
                raise ValueError(f"{block} does not belong to a {self.family.label} set")
        object.__setattr__(self, "blocks", tuple(sorted(unique)))

    @classmethod
    def empty(cls, family: Family) -> "NormalizedBlockSet":
        return cls(family)

    def __iter__(self) -> Iterator[NetworkBlock]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def __bool__(self) -> bool:
        return bool(self.blocks)

    def __contains__(self, block: object) -> bool:
        return block in self.blocks

    def lines(self) -> Iterable[str]:
        return (str(block) for block in self.blocks)
