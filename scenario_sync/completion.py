"""
Completion index.

Two independent signals say a unit is done: the persisted index (identity key
-> marker, usually the output file name) and the destination file already
existing on disk. The second one covers output written by runs that predate
or bypass the index. The index is read once and never written during a run.
"""

import json
import logging
import posixpath
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union
from urllib.parse import urlparse

from .errors import IndexLoadError

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = ".csv"


class CompletionIndex:
    """Read-only identity key -> marker mapping."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None, source: Optional[str] = None):
        self._entries = MappingProxyType(dict(entries or {}))
        self.source = source

    def has(self, identity_key: Optional[str]) -> bool:
        return bool(identity_key) and identity_key in self._entries

    def get(self, identity_key: str) -> Optional[str]:
        return self._entries.get(identity_key)

    @property
    def entries(self) -> Mapping[str, str]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity_key) -> bool:
        return self.has(identity_key)


def load_index(index_path: Optional[Union[str, Path]]) -> CompletionIndex:
    """
    Load the completion index.

    No path means an empty index. A configured path that is missing, unreadable
    or not a JSON object raises IndexLoadError: without it we cannot tell what
    has been translated already.
    """
    if not index_path:
        return CompletionIndex()

    path = Path(index_path)
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise IndexLoadError(f"Index file not found: {path}")
    except json.JSONDecodeError as e:
        raise IndexLoadError(f"Index file is not valid JSON: {path}: {e}")
    except UnicodeDecodeError as e:
        raise IndexLoadError(f"Index file is not UTF-8 text: {path}: {e}")
    except OSError as e:
        raise IndexLoadError(f"Cannot read index file {path}: {e}")

    if not isinstance(data, dict):
        raise IndexLoadError(f"Index file must hold a JSON object, got {type(data).__name__}: {path}")

    entries = {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}
    logger.info("Found %d csv files in index file %s", len(entries), path)
    return CompletionIndex(entries, source=str(path))


def has(index: CompletionIndex, identity_key: Optional[str]) -> bool:
    return index.has(identity_key)


def resolve_destination(dest_folder: Union[str, Path], origin_name: str) -> Path:
    """
    Map an origin name (URL or asset path) to its output file.

    ``http://host/scene/b.json`` and ``json/b.json`` both map to
    ``<dest_folder>/b.csv``.
    """
    parsed = urlparse(origin_name)
    name_path = parsed.path if parsed.scheme else origin_name
    base = posixpath.basename(name_path.replace("\\", "/").rstrip("/"))
    if not base:
        raise ValueError(f"Cannot derive an output name from {origin_name!r}")
    stem = posixpath.splitext(base)[0] or base
    return Path(dest_folder) / (stem + OUTPUT_SUFFIX)


def destination_exists(path: Union[str, Path]) -> bool:
    return Path(path).exists()
