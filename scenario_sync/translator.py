#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
translator.py

Default translation transform: fills the ``trans`` column of a scenario CSV.

  - rows are sent in batches of ``config.batch_size`` as {"items": [...]}
  - the model answers {"items": [{"id": ..., "target_text": ...}]}
  - glossary terms present in a batch are pinned in the prompt
  - each batch is retried ``config.max_retries`` times with backoff

Any batch that still fails raises TranslationError, so the caller never
writes a half-translated file.
"""

import json
import logging
import random
import re
import time
from typing import Any, Dict, List, Mapping

from .errors import MalformedContentError, TranslationError
from .llm_client import LLMClient, LLMError
from .scenario_csv import is_dialogue_row, read_csv_table, write_csv_text

logger = logging.getLogger(__name__)

STEP = "scenario_translate"


def backoff_sleep(attempt: int) -> None:
    base = min(2 ** attempt, 30)
    jitter = random.uniform(0.2, 1.0)
    time.sleep(base * jitter)


def split_into_batches(rows: List[Dict[str, str]], batch_size: int) -> List[List[Dict[str, str]]]:
    return [rows[i:i + batch_size] for i in range(0, len(rows), batch_size)]


def build_glossary_constraints(glossary: Mapping[str, str], source_text: str) -> Dict[str, str]:
    return {src: dst for src, dst in glossary.items() if src and src in source_text}


# -----------------------------
# Prompt builder
# -----------------------------
def build_system_prompt(config) -> str:
    return (
        f"You are a professional game scenario translator ({config.source_language} -> "
        f"{config.target_language}).\n\n"
        "Rules:\n"
        "- Translate every item's source_text naturally, keeping the speaker's tone.\n"
        "- Keep placeholders, tags and line breaks exactly as they appear.\n"
        "- When a glossary is given, use its target terms verbatim.\n\n"
        "Output format (strict):\n"
        '{"items": [{"id": "<same id>", "target_text": "<translation>"}]}\n'
        "Return every id exactly once. Return only the JSON object."
    )


def build_user_prompt(items: List[Dict[str, str]], glossary: Mapping[str, str]) -> str:
    joined = "\n".join(it["source_text"] for it in items)
    terms = build_glossary_constraints(glossary, joined)
    parts = []
    if terms:
        parts.append("Glossary:")
        parts.extend(f"- {src} -> {dst}" for src, dst in terms.items())
        parts.append("")
    parts.append(json.dumps({"items": items}, ensure_ascii=False))
    return "\n".join(parts)


# -----------------------------
# Response parsing
# -----------------------------
def _try_fix_json(raw: str) -> str:
    """Repair common JSON slips: trailing commas, missing commas, single quotes."""
    fixed = re.sub(r',(\s*[}\]])', r'\1', raw)
    fixed = re.sub(r'(\}|\])(\s*)(\{|")', r'\1,\2\3', fixed)
    if "'" in fixed and '"' not in fixed:
        fixed = fixed.replace("'", '"')
    return fixed


def parse_llm_response(response_text: str, expected_ids: List[str]) -> Dict[str, str]:
    """
    Parse the model's JSON answer into id -> target_text.

    Raises ValueError on bad JSON, a missing ``items`` array or an id set that
    differs from the batch.
    """
    text = response_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 3:
            inner = parts[1].strip()
            text = inner[4:].strip() if inner.startswith("json") else inner

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        try:
            data = json.loads(_try_fix_json(text))
        except json.JSONDecodeError:
            raise ValueError(f"JSON parse error: {str(e)[:100]}")

    if not isinstance(data, dict) or "items" not in data:
        raise ValueError("Missing 'items' key in response")
    items = data["items"]
    if not isinstance(items, list):
        raise ValueError("'items' must be an array")

    result = {}
    for item in items:
        if isinstance(item, dict) and item.get("id") is not None:
            result[str(item["id"])] = str(item.get("target_text") or "")

    expected = set(expected_ids)
    returned = set(result)
    if expected != returned:
        raise ValueError(f"ID mismatch: missing={expected - returned}, extra={returned - expected}")
    return result


# -----------------------------
# Transform
# -----------------------------
def translate_batch(client: LLMClient, items: List[Dict[str, str]], config,
                    batch_num: int = 0) -> Dict[str, str]:
    system = build_system_prompt(config)
    user = build_user_prompt(items, config.glossary)
    expected_ids = [it["id"] for it in items]

    last_err = ""
    for attempt in range(config.max_retries + 1):
        try:
            result = client.chat(
                system=system,
                user=user,
                temperature=0,
                metadata={"step": STEP, "batch_idx": batch_num, "attempt": attempt}
            )
            return parse_llm_response(result.text, expected_ids)
        except LLMError as e:
            last_err = f"{e.kind}: {e}"
            if not e.retryable:
                break
        except ValueError as e:
            last_err = str(e)
        if attempt < config.max_retries:
            logger.debug("Batch %d attempt %d failed: %s", batch_num, attempt, last_err)
            backoff_sleep(attempt)

    raise TranslationError(f"batch {batch_num} failed: {last_err}")


def translate_csv_string(csv_text: str, config, client: LLMClient) -> str:
    """Translate every untranslated dialogue row of a scenario CSV."""
    try:
        header, rows = read_csv_table(csv_text)
    except MalformedContentError as e:
        raise TranslationError(f"cannot translate malformed CSV: {e}")

    pending = []
    for idx, row in enumerate(rows):
        if is_dialogue_row(row) and row.get("text", "").strip() and not row.get("trans", "").strip():
            pending.append({"id": str(idx), "source_text": row["text"]})

    batches = split_into_batches(pending, max(1, config.batch_size))
    logger.debug("Translating %d rows in %d batches", len(pending), len(batches))

    for batch_num, items in enumerate(batches, start=1):
        translated = translate_batch(client, items, config, batch_num)
        for idx, target in translated.items():
            rows[int(idx)]["trans"] = target

    if "trans" not in header:
        header.append("trans")
    return write_csv_text(rows, header)


class ScenarioTranslator:
    """Callable transform ``(csv_text, config) -> csv_text`` bound to one client."""

    def __init__(self, client: LLMClient):
        self.client = client

    @classmethod
    def from_config(cls, config) -> "ScenarioTranslator":
        """Raises LLMError(kind="config") when the LLM settings are incomplete."""
        return cls(LLMClient.from_config(config))

    def __call__(self, content: str, config: Any) -> str:
        return translate_csv_string(content, config, self.client)
