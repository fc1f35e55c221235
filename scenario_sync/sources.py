"""
Source enumerators.

Both strategies yield CandidateUnit objects lazily through ``produce()``; the
dispatcher does not care where a unit came from.

- FolderEnumerator walks a local export of scenario CSVs. Identity lives inside
  the file, so content is read while producing the unit.
- RemoteDiffEnumerator reads the asset diff manifest and yields one unit per
  added scenario JSON. Identity comes from the path, content is fetched only
  when the dispatcher decides the unit needs translating.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional

import requests

from .errors import RemoteFetchError, SourceError

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"
UNSUPPORTED_SUFFIXES = (".json",)
DEFAULT_NAMESPACE = "json/"

KIND_CSV = "csv"
KIND_FRAMES = "frames"


@dataclass(frozen=True)
class CandidateUnit:
    """
    One unit of work before the skip decision.

    ``raw_content`` is set for folder units. Remote units leave it empty and
    carry a ``loader`` that fetches the content on demand.
    """
    locator: str
    raw_content: Optional[Any] = None
    identity_key: Optional[str] = None
    content_kind: str = KIND_CSV
    loader: Optional[Callable[[], Any]] = field(default=None, compare=False, repr=False)

    def load_content(self) -> Any:
        if self.raw_content is not None:
            return self.raw_content
        if self.loader is None:
            raise SourceError(f"No content available for {self.locator}")
        return self.loader()


class SourceEnumerator(ABC):
    """Produces a finite, single-pass sequence of candidate units."""

    @abstractmethod
    def produce(self) -> Iterator[CandidateUnit]:
        raise NotImplementedError

    def __iter__(self) -> Iterator[CandidateUnit]:
        return self.produce()


class FolderEnumerator(SourceEnumerator):

    def __init__(self, source_dir):
        self.source_dir = Path(source_dir)

    def _walk(self) -> List[Path]:
        files = []
        for root, dirs, names in os.walk(self.source_dir):
            dirs.sort()
            for name in sorted(names):
                files.append(Path(root) / name)
        return files

    def produce(self) -> Iterator[CandidateUnit]:
        if not self.source_dir.is_dir():
            raise SourceError(f"Source directory not found: {self.source_dir}")

        files = self._walk()
        csv_count = sum(1 for p in files if p.suffix.lower() == CSV_SUFFIX)
        logger.info("Found %d csv files to translate in %s", csv_count, self.source_dir)

        for path in files:
            suffix = path.suffix.lower()
            if suffix in UNSUPPORTED_SUFFIXES:
                logger.warning("Skipped %s: %s files are currently not supported", path, suffix)
                continue
            if suffix != CSV_SUFFIX:
                continue
            try:
                content = _read_text(path)
            except (OSError, UnicodeDecodeError) as e:
                # Left to the dispatcher, which records it as a failed unit.
                logger.debug("Deferring unreadable file %s: %s", path, e)
                yield CandidateUnit(locator=str(path), content_kind=KIND_CSV,
                                    loader=lambda p=path: _read_text(p))
                continue
            yield CandidateUnit(locator=str(path), raw_content=content, content_kind=KIND_CSV)


def _read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8-sig") as f:
        return f.read()


def _get_json(session, url: str, timeout: int) -> Any:
    """GET a URL and decode its JSON body, mapping every failure to RemoteFetchError."""
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RemoteFetchError(f"Request failed for {url}: {e}", url=url)

    if resp.status_code >= 400:
        raise RemoteFetchError(
            f"HTTP error {resp.status_code} for {url}",
            url=url, http_status=resp.status_code
        )
    try:
        return resp.json()
    except ValueError as e:
        raise RemoteFetchError(f"Response from {url} is not JSON: {e}",
                               url=url, http_status=resp.status_code)


def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


class RemoteDiffEnumerator(SourceEnumerator):
    """
    Yields the scenarios added since a version marker.

    Only ``added`` entries under ``namespace`` are considered; modified and
    removed entries are ignored, translation is append-only.
    """

    def __init__(self, diff_url: str, asset_endpoint: str,
                 namespace: str = DEFAULT_NAMESPACE,
                 session=None, timeout: int = 30):
        self.diff_url = diff_url
        self.asset_endpoint = asset_endpoint
        self.namespace = namespace
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_added_paths(self) -> List[str]:
        manifest = _get_json(self.session, self.diff_url, self.timeout)
        if not isinstance(manifest, dict):
            raise RemoteFetchError(
                f"Diff manifest must be a JSON object, got {type(manifest).__name__}",
                url=self.diff_url
            )
        added = manifest.get("added")
        if added is None:
            return []
        if not isinstance(added, dict):
            raise RemoteFetchError(
                f"Diff manifest 'added' must be an object, got {type(added).__name__}",
                url=self.diff_url
            )
        return [p for p in added if isinstance(p, str) and p.startswith(self.namespace)]

    def fetch_asset(self, path: str) -> Any:
        return _get_json(self.session, join_url(self.asset_endpoint, path), self.timeout)

    def produce(self) -> Iterator[CandidateUnit]:
        paths = self.fetch_added_paths()
        logger.info("Found %d json files in latest diff to translate", len(paths))

        for path in paths:
            yield CandidateUnit(
                locator=path,
                identity_key=path[len(self.namespace):],
                content_kind=KIND_FRAMES,
                loader=lambda p=path: self.fetch_asset(p),
            )
