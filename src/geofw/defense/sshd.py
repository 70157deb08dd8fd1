"""
geofw.defense.sshd
~~~~~~~~~~~~~~~~~~

Find the port sshd listens on so the ruleset never locks the operator out.

Only the first ``Port <n>`` directive at the start of a line is honoured,
as sshd itself does for a single listener.  Anything going wrong here is
non-fatal: the default port is used and a warning is logged.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
_PORT_RE = re.compile(r"^Port\s+(\d+)")


def find_ssh_port(config_path: Path) -> int | None:
    """
    Return the first valid ``Port`` value in *config_path*, or ``None``.

    Raises :class:`OSError` if the file cannot be read.
    """
    with Path(config_path).open("r", encoding="utf-8", errors="replace") as fh:
        for lineno, line in enumerate(fh, 1):
            match = _PORT_RE.match(line)
            if not match:
                continue
            port = int(match.group(1))
            if not 1 <= port <= 65535:
                logger.warning("%s:%d: ignoring out-of-range Port %d", config_path, lineno, port)
                continue
            return port
    return None


def discover_admin_port(config_path: Path, default: int = DEFAULT_SSH_PORT) -> int:
    """Port from the sshd configuration, falling back to *default*."""
    logger.info("Finding SSH port in %s", config_path)
    try:
        port = find_ssh_port(config_path)
    except OSError as exc:
        logger.warning("Could not read sshd configuration %s (%s); using default port %d", config_path, exc, default)
        return default

    if port is None:
        logger.warning("No Port directive in %s; using default port %d", config_path, default)
        return default

    logger.info("SSH port found: %d", port)
    return port
