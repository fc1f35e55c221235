"""Per-run outcome counts and the optional JSON run report."""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from .dispatcher import Failed, Outcome, Skipped, Translated

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    translated: List[str] = field(default_factory=list)
    skipped: Counter = field(default_factory=Counter)
    failures: List[Failed] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def record(self, outcome: Outcome) -> None:
        if isinstance(outcome, Translated):
            self.translated.append(str(outcome.dest_path))
        elif isinstance(outcome, Skipped):
            self.skipped[outcome.reason.value] += 1
        elif isinstance(outcome, Failed):
            self.failures.append(outcome)
        else:
            raise TypeError(f"Unknown outcome: {outcome!r}")

    @property
    def translated_count(self) -> int:
        return len(self.translated)

    @property
    def skipped_count(self) -> int:
        return sum(self.skipped.values())

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.translated_count + self.skipped_count + self.failed_count

    def log(self) -> None:
        logger.info("Done: %d units | translated %d | skipped %d %s | failed %d",
                    self.total, self.translated_count, self.skipped_count,
                    dict(self.skipped), self.failed_count)
        for f in self.failures:
            logger.warning("  failed %s [%s]: %s", f.locator, f.error_kind, f.message[:200])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": datetime.now().isoformat(),
            "total": self.total,
            "translated_count": self.translated_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "skipped": dict(self.skipped),
            "translated": list(self.translated),
            "failures": [
                {"locator": f.locator, "kind": f.error_kind, "message": f.message}
                for f in self.failures
            ],
        }

    def write(self, path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Run report written to %s", path)
