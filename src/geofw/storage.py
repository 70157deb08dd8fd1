"""
geofw.storage
~~~~~~~~~~~~~

Read and write the per-family prefix files (``ir_prefixes_v4.txt`` and
``ir_prefixes_v6.txt``): one CIDR per line, canonical order, nothing else.

Writes go to a temporary file next to the target and are moved into place
with :func:`os.replace`, so readers see either the previous snapshot or the
new one, never a partial file.  An empty set leaves an existing file alone.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Tuple

from geofw.errors import PersistError, PrefixFileError
from geofw.models import Family, NetworkBlock, NormalizedBlockSet

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace *path* with *text* in one rename, keeping its permissions."""
    path = Path(path)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = 0o644
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_prefix_file(path: Path, block_set: NormalizedBlockSet) -> bool:
    """
    Persist *block_set* to *path*.

    Returns ``False`` when the set is empty and nothing was written.
    Raises :class:`PersistError` when the file cannot be written.
    """
    if not block_set:
        logger.info("No %s prefixes to write; keeping %s as is", block_set.family.label, path)
        return False

    try:
        atomic_write_text(path, "".join(f"{line}\n" for line in block_set.lines()))
    except OSError as exc:
        raise PersistError(
            f"could not write {block_set.family.label} prefixes to {path}", stage="write-prefixes"
        ) from exc
    logger.info("Wrote %d %s prefixes to %s", len(block_set), block_set.family.label, path)
    return True


def write_prefix_files(
    v4_set: NormalizedBlockSet,
    v6_set: NormalizedBlockSet,
    v4_path: Path,
    v6_path: Path,
) -> Tuple[bool, bool]:
    """Write both families concurrently and wait for both."""
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="geofw-write") as pool:
        f4 = pool.submit(write_prefix_file, v4_path, v4_set)
        f6 = pool.submit(write_prefix_file, v6_path, v6_set)
    # leaving the block joined both writes; result() re-raises either failure
    return f4.result(), f6.result()


def read_prefix_file(path: Path, family: Family) -> NormalizedBlockSet:
    """
    Load a prefix file written by :func:`write_prefix_file`.

    A missing file is an empty set.  Any line that is not a CIDR of *family*
    raises :class:`PrefixFileError`.
    """
    path = Path(path)
    if not path.exists():
        logger.warning("Prefix file %s not found; treating %s set as empty", path, family.label)
        return NormalizedBlockSet.empty(family)

    blocks = []
    try:
        with path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    block = NetworkBlock.parse(line)
                except ValueError as exc:
                    raise PrefixFileError(f"{path}:{lineno}: failed parsing prefix {line!r}: {exc}") from exc
                if block.family is not family:
                    raise PrefixFileError(f"{path}:{lineno}: {line} is not an {family.label} prefix")
                blocks.append(block)
    except OSError as exc:
        raise PrefixFileError(f"could not read {path}: {exc}") from exc

    logger.debug("Read %d %s prefixes from %s", len(blocks), family.label, path)
    return NormalizedBlockSet(family, tuple(blocks))
