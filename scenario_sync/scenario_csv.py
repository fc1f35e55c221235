# -*- coding: utf-8 -*-
"""
Scenario CSV helpers.

A scenario CSV has the header ``id,name,text,trans``; ``id``, ``name`` and
``text`` are required, ``trans`` is added on output when the source lacks it
and any other columns pass through untouched. Besides one row per line of
dialogue it carries bookkeeping rows keyed by the ``id`` column:

  info,<json url>          origin of the scenario, used as its identity
  translator,<name>        optional credit line

The identity of a unit is the ``info`` URL, not the file's location, because
the same scenario shows up under different paths in the local export and in
the remote asset feed.
"""

import csv
import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import MalformedContentError

FIELDNAMES = ["id", "name", "text", "trans"]
REQUIRED_COLUMNS = ("id", "name", "text")
INFO_ID = "info"
TRANSLATOR_ID = "translator"
SPECIAL_IDS = {INFO_ID, TRANSLATOR_ID}


@dataclass
class UnitInfo:
    identity_key: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def read_csv_table(csv_text: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Parse scenario CSV text into (header, rows), tolerating a leading BOM."""
    if csv_text.startswith("\ufeff"):
        csv_text = csv_text[1:]
    reader = csv.DictReader(io.StringIO(csv_text, newline=""))
    header = list(reader.fieldnames or [])
    missing = [name for name in REQUIRED_COLUMNS if name not in header]
    if missing:
        raise MalformedContentError(f"CSV header is missing columns: {', '.join(missing)}")
    rows = [{k: (v or "") for k, v in row.items() if k is not None} for row in reader]
    return header, rows


def read_csv_text(csv_text: str) -> List[Dict[str, str]]:
    return read_csv_table(csv_text)[1]


def write_csv_text(rows: List[Dict[str, str]], fieldnames: List[str] = None) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=fieldnames or FIELDNAMES,
                            extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def is_dialogue_row(row: Dict[str, str]) -> bool:
    return (row.get("id") or "").strip() not in SPECIAL_IDS


def extract_identity(raw_content: str) -> UnitInfo:
    """
    Derive the identity key of a scenario CSV.

    Raises MalformedContentError when the text is not a scenario CSV or has no
    ``info`` row naming its origin.
    """
    if not isinstance(raw_content, str) or not raw_content.strip():
        raise MalformedContentError("empty content")

    try:
        rows = read_csv_text(raw_content)
    except csv.Error as e:
        raise MalformedContentError(f"CSV parse error: {e}")

    json_url = ""
    translator = ""
    for row in rows:
        row_id = (row.get("id") or "").strip()
        if row_id == INFO_ID and not json_url:
            json_url = (row.get("name") or "").strip()
        elif row_id == TRANSLATOR_ID and not translator:
            translator = (row.get("name") or "").strip()

    if not json_url:
        raise MalformedContentError("no info row with the origin json url")

    dialogue = [r for r in rows if is_dialogue_row(r)]
    return UnitInfo(
        identity_key=json_url,
        metadata={
            "lines": len(dialogue),
            "translator": translator,
            "has_translations": any((r.get("trans") or "").strip() for r in dialogue),
        },
    )


def frames_to_csv_text(frames: Any, json_url: str) -> str:
    """
    Convert a remote scenario (list of frame objects) into scenario CSV.

    Frames without ``detail`` text are dropped; the ``info`` row is appended
    last so the result round-trips through ``extract_identity``.
    """
    if not isinstance(frames, list):
        raise MalformedContentError(f"expected a list of frames, got {type(frames).__name__}")

    rows = []
    for i, frame in enumerate(frames):
        if not isinstance(frame, dict):
            raise MalformedContentError(f"frame {i} is not an object")
        detail = frame.get("detail") or ""
        if not str(detail).strip():
            continue
        name = frame.get("charcter1_name") or frame.get("name") or ""
        frame_id = frame.get("id")
        rows.append({
            "id": str(frame_id) if frame_id is not None else str(i),
            "name": str(name),
            "text": str(detail),
            "trans": "",
        })
    rows.append({"id": INFO_ID, "name": json_url, "text": "", "trans": ""})
    return write_csv_text(rows)
