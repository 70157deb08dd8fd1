"""
geofw.errors
~~~~~~~~~~~~

Exception hierarchy shared by every pipeline stage.

Each error carries the *stage* it was raised in so that the CLI can report
``"<stage> failed: <cause>"`` without the operator having to re-run with
``--verbose``.
"""

from __future__ import annotations


class GeofwError(Exception):
    """Base class for all geofw errors."""

    stage: str = "pipeline"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class FetchError(GeofwError):
    """Routing table could not be downloaded after all attempts."""

    stage = "fetch"

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class FetchCancelled(GeofwError):
    """Fetch was aborted through its cancellation event."""

    stage = "fetch"


class MalformedRecordError(GeofwError):
    """A single feed record has a missing or invalid field."""

    stage = "classify"


class PrefixFileError(GeofwError):
    """A persisted prefix file contains something that is not a CIDR."""

    stage = "read-prefixes"


class PersistError(GeofwError):
    """A prefix file or the ruleset could not be written to disk."""

    stage = "write"


class EmptyAllowListError(GeofwError):
    """Both prefix sets are empty; applying would lock out everything but SSH."""

    stage = "render"


class RulesetLoadError(GeofwError):
    """``nft -f`` rejected the generated ruleset."""

    stage = "load-ruleset"

    def __init__(self, message: str, *, result=None) -> None:
        super().__init__(message)
        self.result = result
