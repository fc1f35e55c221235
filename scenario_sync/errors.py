"""
Sync errors

Every error carries a ``kind`` string so the run report can group failures
without inspecting exception types. Whether an error aborts the run or only
the current unit is decided by the caller, see ``orchestrator.run``.
"""

from typing import Optional


class SyncError(Exception):
    """Base error with a short machine-readable kind."""

    kind = "sync"

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        if kind:
            self.kind = kind


class MalformedContentError(SyncError):
    """Content could not be parsed into a scenario CSV or frame list."""

    kind = "malformed"


class IndexLoadError(SyncError):
    """The configured completion index is missing or not a JSON object."""

    kind = "index"


class RemoteFetchError(SyncError):
    """
    An HTTP fetch failed.

    Fatal for the diff manifest, unit-local for individual assets.
    """

    kind = "remote"

    def __init__(self, message: str, url: str = "", http_status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.http_status = http_status


class TranslationError(SyncError):
    """The translation transform failed for one unit."""

    kind = "translation"


class ConfigError(SyncError):
    kind = "config"


class SourceError(SyncError):
    """The source location itself is unusable (e.g. missing directory)."""

    kind = "source"
