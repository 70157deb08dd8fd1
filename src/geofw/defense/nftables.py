"""
geofw.defense.nftables
~~~~~~~~~~~~~~~~~~~~~~

Install the rendered ruleset and hand it over to the nftables service.

Design
------
* The document is written to ``/etc/nftables.conf`` (full overwrite, atomic
  rename) so the distribution's ``nftables.service`` loads it on boot.
* The external programs are reached only through the small
  :class:`Firewall` interface (``load`` / ``enable`` / ``verify``).
  :class:`NftablesFirewall` is the real implementation; tests pass a fake.
* The three steps run strictly in order.  A failed ``load`` stops
  everything: the service is never enabled against a ruleset that nft
  rejected.  ``enable`` and ``verify`` failures are reported but the loaded
  ruleset stays in place.

Functions
---------
write_ruleset(document, path) -> None
apply(document, path, firewall) -> ApplyResult
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from geofw.errors import PersistError, RulesetLoadError
from geofw.storage import atomic_write_text

logger = logging.getLogger(__name__)

NFT_BIN: str = "nft"
SYSTEMCTL_BIN: str = "systemctl"
SERVICE_NAME: str = "nftables"

# searched after PATH; sbin is often absent from a non-root PATH
_SYSTEM_DIRS = ("/usr/sbin", "/sbin", "/usr/bin", "/bin")


def resolve_binary(name: str) -> Optional[str]:
    """
    Locate an executable given as a bare name or a path.

    Bare names are looked up on ``PATH`` and then in the system directories.
    Returns ``None`` when nothing executable is found.
    """
    search = os.pathsep.join(filter(None, [os.environ.get("PATH"), *_SYSTEM_DIRS]))
    return shutil.which(name, path=search)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    args: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip() or "no output"
        return f"`{' '.join(self.args)}` exited with {self.returncode}: {detail}"


class Firewall(Protocol):
    def load(self, path: Path) -> CommandResult: ...

    def enable(self) -> CommandResult: ...

    def verify(self) -> CommandResult: ...


class NftablesFirewall:
    """Drive ``nft`` and ``systemctl`` through :mod:`subprocess`."""

    def __init__(
        self,
        *,
        nft_bin: str = NFT_BIN,
        systemctl_bin: str = SYSTEMCTL_BIN,
        service: str = SERVICE_NAME,
        timeout: float = 60.0,
    ) -> None:
        self.nft_bin = nft_bin
        self.systemctl_bin = systemctl_bin
        self.service = service
        self.timeout = timeout

    def _run(self, cmd: List[str]) -> CommandResult:
        binary = resolve_binary(cmd[0])
        if binary is None:
            return CommandResult(cmd, 127, stderr=f"binary not found: {cmd[0]}")
        cmd = [binary, *cmd[1:]]

        logger.debug("Executing: %s", " ".join(cmd))
        try:
            proc = subprocess.run(  # nosec B603 - fixed argv, no shell
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(cmd, 124, stderr=f"timed out after {self.timeout:g}s")
        return CommandResult(cmd, proc.returncode, proc.stdout or "", proc.stderr or "")

    def load(self, path: Path) -> CommandResult:
        return self._run([self.nft_bin, "-f", str(path)])

    def enable(self) -> CommandResult:
        return self._run([self.systemctl_bin, "enable", "--now", self.service])

    def verify(self) -> CommandResult:
        return self._run([self.nft_bin, "list", "ruleset"])


@dataclass
class ApplyResult:
    path: Path
    loaded: bool = False
    enabled: bool = False
    verified: bool = False
    ruleset: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.loaded and self.enabled and self.verified


def write_ruleset(document: str, path: Path) -> None:
    try:
        atomic_write_text(Path(path), document)
    except OSError as exc:
        raise PersistError(f"could not write {path}", stage="write-ruleset") from exc
    logger.info("Wrote nftables configuration to %s", path)


def apply(document: str, path: Path, firewall: Firewall) -> ApplyResult:
    """
    Write *document* to *path*, load it, enable the service, list it.

    Raises
    ------
    PersistError
        *path* could not be written; nothing was loaded.
    RulesetLoadError
        ``nft -f`` failed; the service was not touched.
    """
    path = Path(path)
    write_ruleset(document, path)
    result = ApplyResult(path=path)

    logger.info("Applying nftables configuration")
    loaded = firewall.load(path)
    if not loaded.ok:
        logger.error("Loading %s failed: %s", path, loaded.describe())
        raise RulesetLoadError(f"failed to load {path}: {loaded.describe()}", result=loaded)
    result.loaded = True

    enabled = firewall.enable()
    if enabled.ok:
        result.enabled = True
        logger.info("Configuration applied and %s service started", SERVICE_NAME)
    else:
        msg = f"failed to enable and start {SERVICE_NAME}: {enabled.describe()}"
        result.errors.append(msg)
        logger.error(msg)

    logger.info("Verifying nftables ruleset")
    verified = firewall.verify()
    if verified.ok:
        result.verified = True
        result.ruleset = verified.stdout
        logger.info("Active ruleset:\n%s", verified.stdout.rstrip())
    else:
        msg = f"failed to verify ruleset: {verified.describe()}"
        result.errors.append(msg)
        logger.error(msg)

    return result
