"""
Translation dispatcher.

For one candidate: resolve its identity, check both completion signals,
translate, and write the result atomically. Every failure here is local to the
unit; the dispatcher returns an outcome instead of raising so the run moves on
to the next candidate.
"""

import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Set, Union

from .completion import CompletionIndex, destination_exists, resolve_destination
from .errors import MalformedContentError, SyncError
from .scenario_csv import extract_identity, frames_to_csv_text
from .sources import KIND_FRAMES, CandidateUnit

logger = logging.getLogger(__name__)

# translate(content, config) -> translated content
TranslateFn = Callable[[str, Any], str]


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


# mkstemp creates 0600 files; outputs get the mode a plain open() would give
FILE_MODE = _default_file_mode()


class SkipReason(str, Enum):
    ALREADY_TRANSLATED = "already_translated"
    DESTINATION_EXISTS = "destination_exists"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class Translated:
    locator: str
    dest_path: Path


@dataclass(frozen=True)
class Skipped:
    locator: str
    reason: SkipReason


@dataclass(frozen=True)
class Failed:
    locator: str
    error_kind: str
    message: str


Outcome = Union[Translated, Skipped, Failed]


class DestinationClaims:
    """Destinations already taken in this run; one writer per output file."""

    def __init__(self):
        self._claimed: Set[Path] = set()
        self._lock = threading.Lock()

    def claim(self, path: Path) -> bool:
        key = Path(path).resolve()
        with self._lock:
            if key in self._claimed:
                return False
            self._claimed.add(key)
            return True

    def __len__(self) -> int:
        return len(self._claimed)


def write_atomic(path: Union[str, Path], text: str) -> None:
    """Write ``text`` to ``path`` so the file is either complete or absent."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _failed(candidate: CandidateUnit, kind: str, err: BaseException) -> Failed:
    logger.error("Failed to translate %s [%s]: %s", candidate.locator, kind, err)
    return Failed(candidate.locator, kind, str(err))


def resolve_identity(candidate: CandidateUnit) -> str:
    if candidate.identity_key:
        return candidate.identity_key
    return extract_identity(candidate.load_content()).identity_key


def dispatch(candidate: CandidateUnit,
             config: Any,
             policy,
             index: CompletionIndex,
             translate: TranslateFn,
             claims: Optional[DestinationClaims] = None) -> Outcome:
    """Decide whether ``candidate`` needs translating and, if so, translate it."""
    try:
        identity_key = resolve_identity(candidate)
    except SyncError as e:
        return _failed(candidate, e.kind, e)
    except (OSError, UnicodeDecodeError) as e:
        return _failed(candidate, "io", e)

    if index.has(identity_key):
        logger.debug("Skipped %s because of file already translated", identity_key)
        return Skipped(candidate.locator, SkipReason.ALREADY_TRANSLATED)

    try:
        dest_path = resolve_destination(policy.dest_folder, identity_key)
    except ValueError as e:
        return _failed(candidate, MalformedContentError.kind, e)
    if policy.skip_existing and destination_exists(dest_path):
        logger.debug("Skipped %s because of file existence", dest_path)
        return Skipped(candidate.locator, SkipReason.DESTINATION_EXISTS)

    if claims is not None and not claims.claim(dest_path):
        logger.warning("Skipped %s: %s is already produced by another unit in this run",
                       candidate.locator, dest_path)
        return Skipped(candidate.locator, SkipReason.DUPLICATE)

    logger.info("Translating %s", candidate.locator)
    try:
        content = candidate.load_content()
        if candidate.content_kind == KIND_FRAMES:
            logger.debug("translating json with %d frames",
                         len(content) if isinstance(content, list) else 0)
            content = frames_to_csv_text(content, identity_key)
        elif not isinstance(content, str):
            raise MalformedContentError(f"unexpected content type {type(content).__name__}")
    except SyncError as e:
        return _failed(candidate, e.kind, e)
    except (OSError, UnicodeDecodeError) as e:
        return _failed(candidate, "io", e)

    try:
        translated = translate(content, config)
    except SyncError as e:
        return _failed(candidate, e.kind, e)
    except Exception as e:
        logger.exception("Unexpected error from the translation transform for %s", candidate.locator)
        return Failed(candidate.locator, type(e).__name__, str(e))

    try:
        write_atomic(dest_path, translated)
    except OSError as e:
        return _failed(candidate, "write", e)

    logger.info("Output to %s", dest_path)
    return Translated(candidate.locator, dest_path)
