"""
geofw.render.nftables
~~~~~~~~~~~~~~~~~~~~~

Build the ``/etc/nftables.conf`` document.

The document is assembled from small section builders that each return a
list of lines; optional sections simply return nothing.  The output is a
pure function of its inputs, so identical prefix sets and port always give
byte-identical text.

Layout
------
* ``flush ruleset``
* ``table inet filter`` with
  - ``set allowed_ipv4`` / ``set allowed_ipv6`` (only when non-empty)
  - ``chain input``: policy drop; established/related, loopback and SSH
    accepted, then sources in the allowed sets
  - ``chain forward``: policy drop
  - ``chain output``: policy accept
"""

from __future__ import annotations

from typing import List

from geofw.models import Family, NormalizedBlockSet

TABLE_NAME = "filter"
SET_NAME_V4 = "allowed_ipv4"
SET_NAME_V6 = "allowed_ipv6"

_INDENT = "\t"


def _set_section(name: str, addr_type: str, block_set: NormalizedBlockSet) -> List[str]:
    if not block_set:
        return []
    elements = list(block_set.lines())
    lines = [
        f"set {name} {{",
        f"{_INDENT}type {addr_type}; flags interval; auto-merge;",
        f"{_INDENT}elements = {{",
    ]
    last = len(elements) - 1
    lines += [
        f"{_INDENT * 2}{cidr}{',' if i < last else ''}" for i, cidr in enumerate(elements)
    ]
    lines += [f"{_INDENT}}}", "}"]
    return lines


def _chain(name: str, hook: str, policy: str, rules: List[str]) -> List[str]:
    body = [f"type filter hook {hook} priority filter; policy {policy};", *rules]
    return [f"chain {name} {{", *(_INDENT + line for line in body), "}"]


def _input_rules(admin_port: int, has_v4: bool, has_v6: bool) -> List[str]:
    rules = [
        "ct state established,related accept",
        "iif lo accept",
        f"tcp dport {admin_port} accept",
    ]
    if has_v4:
        rules.append(f"ip saddr @{SET_NAME_V4} accept")
    if has_v6:
        rules.append(f"ip6 saddr @{SET_NAME_V6} accept")
    return rules


def render(
    v4_set: NormalizedBlockSet,
    v6_set: NormalizedBlockSet,
    admin_port: int,
) -> str:
    """
    Render the allow-list ruleset.

    Raises :class:`ValueError` if a set has the wrong family or the port is
    not a valid TCP port.
    """
    if v4_set.family is not Family.V4 or v6_set.family is not Family.V6:
        raise ValueError("render() expects an IPv4 set and an IPv6 set, in that order")
    if isinstance(admin_port, bool) or not isinstance(admin_port, int) or not 1 <= admin_port <= 65535:
        raise ValueError(f"invalid administrative port: {admin_port!r}")

    sections: List[List[str]] = [
        _set_section(SET_NAME_V4, "ipv4_addr", v4_set),
        _set_section(SET_NAME_V6, "ipv6_addr", v6_set),
        _chain("input", "input", "drop", _input_rules(admin_port, bool(v4_set), bool(v6_set))),
        _chain("forward", "forward", "drop", []),
        _chain("output", "output", "accept", []),
    ]

    table: List[str] = []
    for section in sections:
        if not section:
            continue
        if table:
            table.append("")
        table.extend(section)

    lines = [
        "#!/usr/sbin/nft -f",
        "",
        "flush ruleset",
        "",
        f"table inet {TABLE_NAME} {{",
        *(_INDENT + line if line else "" for line in table),
        "}",
    ]
    return "\n".join(lines) + "\n"
