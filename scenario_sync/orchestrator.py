"""
Run orchestration.

Picks the enumerator for the run's source mode and pushes its candidates
through the dispatcher. Only errors that invalidate the whole candidate set
(unreadable index, failed manifest fetch, missing source directory) escape
``run``; everything per-unit ends up in the RunSummary.
"""

import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .completion import CompletionIndex, load_index
from .config import RemoteEndpoints
from .dispatcher import DestinationClaims, TranslateFn, dispatch
from .reporting import RunSummary
from .sources import DEFAULT_NAMESPACE, FolderEnumerator, RemoteDiffEnumerator, SourceEnumerator

logger = logging.getLogger(__name__)


class SourceMode(str, Enum):
    FOLDER = "folder"
    REMOTE_DIFF = "remote-diff"


@dataclass(frozen=True)
class RunPolicy:
    source_mode: SourceMode = SourceMode.FOLDER
    dest_folder: Path = Path("./tmp/translated")
    skip_existing: bool = True
    index_path: Optional[Path] = None
    source_dir: Path = Path("./tmp/untranslated")
    remote_tag: str = "-1"
    namespace: str = DEFAULT_NAMESPACE
    max_inflight: int = 1


def build_enumerator(policy: RunPolicy,
                     endpoints: Optional[RemoteEndpoints] = None,
                     session=None) -> SourceEnumerator:
    if policy.source_mode == SourceMode.FOLDER:
        return FolderEnumerator(policy.source_dir)
    if policy.source_mode == SourceMode.REMOTE_DIFF:
        endpoints = endpoints or RemoteEndpoints()
        endpoints.require()
        return RemoteDiffEnumerator(
            diff_url=endpoints.diff_url(policy.remote_tag),
            asset_endpoint=endpoints.asset_endpoint,
            namespace=policy.namespace,
            session=session,
            timeout=endpoints.timeout_s,
        )
    raise ValueError(f"Unknown source mode: {policy.source_mode!r}")


def _run_sequential(enumerator, config, policy, index, translate, claims, summary):
    for candidate in enumerator.produce():
        summary.record(dispatch(candidate, config, policy, index, translate, claims))


def _run_pooled(enumerator, config, policy, index, translate, claims, summary):
    """Bounded pool: at most 2 * max_inflight units outstanding at once."""
    limit = policy.max_inflight * 2
    with ThreadPoolExecutor(max_workers=policy.max_inflight) as executor:
        pending = set()
        try:
            for candidate in enumerator.produce():
                pending.add(executor.submit(dispatch, candidate, config, policy, index, translate, claims))
                if len(pending) >= limit:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        summary.record(future.result())
        finally:
            # Units already submitted still finish and are counted, even when
            # enumeration aborts the run.
            for future in pending:
                summary.record(future.result())


def run(policy: RunPolicy,
        config: Any,
        translate: TranslateFn,
        endpoints: Optional[RemoteEndpoints] = None,
        session=None,
        index: Optional[CompletionIndex] = None) -> RunSummary:
    """
    Execute one incremental translation run.

    Raises IndexLoadError, RemoteFetchError (manifest), SourceError or
    ConfigError when the run cannot proceed at all.
    """
    if index is None:
        index = load_index(policy.index_path)
    enumerator = build_enumerator(policy, endpoints, session)

    logger.info("Source mode: %s | destination: %s | skip existing: %s | index: %s (%d entries)",
                policy.source_mode.value, policy.dest_folder, policy.skip_existing,
                policy.index_path, len(index))

    summary = RunSummary()
    claims = DestinationClaims()
    if policy.max_inflight > 1:
        _run_pooled(enumerator, config, policy, index, translate, claims, summary)
    else:
        _run_sequential(enumerator, config, policy, index, translate, claims, summary)

    summary.log()
    return summary
