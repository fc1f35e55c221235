"""
scenario_sync: incremental translation of scenario CSVs.
"""
from .completion import CompletionIndex, load_index, resolve_destination, destination_exists
from .dispatcher import Translated, Skipped, Failed, SkipReason, dispatch
from .errors import (
    SyncError,
    MalformedContentError,
    IndexLoadError,
    RemoteFetchError,
    TranslationError,
    ConfigError,
    SourceError,
)
from .orchestrator import RunPolicy, SourceMode, run
from .scenario_csv import extract_identity
from .sources import CandidateUnit, FolderEnumerator, RemoteDiffEnumerator

__all__ = [
    "CompletionIndex",
    "load_index",
    "resolve_destination",
    "destination_exists",
    "Translated",
    "Skipped",
    "Failed",
    "SkipReason",
    "dispatch",
    "SyncError",
    "MalformedContentError",
    "IndexLoadError",
    "RemoteFetchError",
    "TranslationError",
    "ConfigError",
    "SourceError",
    "RunPolicy",
    "SourceMode",
    "run",
    "extract_identity",
    "CandidateUnit",
    "FolderEnumerator",
    "RemoteDiffEnumerator",
]
