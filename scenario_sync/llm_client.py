#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
llm_client.py

A thin OpenAI-compatible chat client used by the scenario translator:
- Standardized errors and retry hints
- Trace logging with request_id, step, usage tokens

Env (read by config.load_settings, not here):
  LLM_BASE_URL, LLM_API_KEY, LLM_API_KEY_FILE, LLM_MODEL
  LLM_TIMEOUT_S (default 60)
  LLM_TRACE_PATH (optional, default data/llm_trace.jsonl)
"""

from __future__ import annotations
import json
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

import requests


@dataclass
class LLMResult:
    """Result of a successful LLM call."""
    text: str
    latency_ms: int
    raw: Optional[dict] = None
    request_id: Optional[str] = None
    usage: Optional[dict] = None  # {"prompt_tokens": int, "completion_tokens": int, "total_tokens": int}
    model: Optional[str] = None


class LLMError(Exception):
    """
    Standardized LLM error with retry hints.

    Kinds:
      - config: Missing configuration (not retryable)
      - timeout: Request timeout (retryable)
      - network: Network error (retryable)
      - upstream: Server error 429/5xx (retryable)
      - http: Client error 4xx (not retryable)
      - parse: Response parse error (retryable - model may fix on retry)
    """
    def __init__(self, kind: str, message: str,
                 retryable: bool = True,
                 http_status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable
        self.http_status = http_status


def _trace(event: Dict[str, Any]) -> None:
    """Append trace event to JSONL file."""
    path = os.getenv("LLM_TRACE_PATH", "data/llm_trace.jsonl").strip()
    if not path:
        return
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        event["timestamp"] = datetime.now().isoformat()
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")
    except (OSError, TypeError, ValueError):
        pass  # Tracing should never break the main flow


def _safe_int(x, default: int = 0) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return default


def _extract_usage(data: dict) -> Optional[dict]:
    """
    Extract OpenAI-style usage info:
      data["usage"] = {"prompt_tokens":..., "completion_tokens":..., "total_tokens":...}
    Some gateways omit this field.
    """
    u = data.get("usage")
    if not isinstance(u, dict):
        return None

    pt = u.get("prompt_tokens")
    ct = u.get("completion_tokens")
    tt = u.get("total_tokens")

    if pt is None and ct is None and tt is None:
        return None

    pt_i = _safe_int(pt, 0)
    ct_i = _safe_int(ct, 0)
    tt_i = _safe_int(tt, pt_i + ct_i)

    return {
        "prompt_tokens": pt_i,
        "completion_tokens": ct_i,
        "total_tokens": tt_i
    }


def load_api_key_file(key_file: str) -> str:
    """
    Read an API key from a file.

    Supports "api key: xxx" / "api_key: xxx" lines or a single-line file that
    holds just the key. Returns "" when nothing usable is found.
    """
    if not key_file or not os.path.exists(key_file):
        return ""
    try:
        with open(key_file, 'r', encoding='utf-8') as f:
            content = f.read().strip()
    except OSError as e:
        _trace({"type": "api_key_file_error", "path": key_file, "error": str(e)})
        return ""

    for line in content.splitlines():
        line = line.strip()
        if line.lower().startswith("api key:") or line.lower().startswith("api_key:"):
            return line.split(":", 1)[1].strip()

    if content and '\n' not in content and ':' not in content:
        return content
    return ""


class LLMClient:
    """
    OpenAI-compatible LLM client.

    Usage:
        llm = LLMClient(base_url, api_key, model)
        try:
            result = llm.chat(system="...", user="...", metadata={"step": "translate"})
        except LLMError as e:
            if not e.retryable:
                raise
    """

    def __init__(self,
                 base_url: str,
                 api_key: str,
                 model: str,
                 timeout_s: int = 60,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or "").strip().rstrip("/")
        self.api_key = (api_key or "").strip()
        self.model = (model or "").strip()
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

        if not self.base_url or not self.api_key:
            raise LLMError(
                "config",
                "Missing LLM configuration. Set env vars: LLM_BASE_URL, LLM_API_KEY",
                retryable=False
            )
        if not self.model:
            raise LLMError("config", "No model configured. Set LLM_MODEL", retryable=False)

    @classmethod
    def from_config(cls, config) -> "LLMClient":
        """Build a client from a TranslationConfig."""
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            model=config.model,
            timeout_s=config.timeout_s,
        )

    def chat(self,
             system: str,
             user: str,
             temperature: float = 0.2,
             metadata: Optional[Dict[str, Any]] = None) -> LLMResult:
        """Send one chat completion request."""
        step = "_default"
        if isinstance(metadata, dict):
            step = metadata.get("step", "_default")

        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user}
            ],
        }

        t0 = time.time()
        try:
            resp = self.session.post(url, headers=headers, json=payload, timeout=self.timeout_s)
        except requests.Timeout as e:
            self._trace_error("timeout", str(e), step)
            raise LLMError("timeout", f"Request timeout after {self.timeout_s}s: {e}",
                           retryable=True)
        except requests.RequestException as e:
            self._trace_error("network", str(e), step)
            raise LLMError("network", f"Network error: {e}", retryable=True)

        latency_ms = int((time.time() - t0) * 1000)

        if resp.status_code in (429, 500, 502, 503, 504):
            self._trace_error("upstream", resp.text[:500], step, http_status=resp.status_code)
            raise LLMError(
                "upstream",
                f"Upstream error HTTP {resp.status_code}: {resp.text[:200]}",
                retryable=True,
                http_status=resp.status_code
            )

        if resp.status_code >= 400:
            self._trace_error("http", resp.text[:500], step, http_status=resp.status_code)
            raise LLMError(
                "http",
                f"HTTP error {resp.status_code}: {resp.text[:200]}",
                retryable=False,
                http_status=resp.status_code
            )

        try:
            data = resp.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self._trace_error("parse", str(e), step)
            raise LLMError("parse", f"Response parse error: {e}",
                           retryable=True, http_status=resp.status_code)

        request_id = data.get("id") if isinstance(data, dict) else None
        usage = _extract_usage(data) if isinstance(data, dict) else None

        trace_event = {
            "type": "llm_call",
            "step": step,
            "request_id": request_id,
            "latency_ms": latency_ms,
            "req_chars": len(system) + len(user),
            "resp_chars": len(text or ""),
            "base_url": self.base_url,
            "model": self.model,
            "usage": usage,
            "usage_present": bool(usage),
        }
        if isinstance(metadata, dict):
            extra_meta = {k: v for k, v in metadata.items() if k != "step"}
            if extra_meta:
                trace_event["meta"] = extra_meta
        _trace(trace_event)

        return LLMResult(
            text=text or "",
            latency_ms=latency_ms,
            raw=data,
            request_id=request_id,
            usage=usage,
            model=self.model
        )

    def _trace_error(self, kind: str, msg: str, step: str,
                     http_status: Optional[int] = None) -> None:
        _trace({
            "type": "llm_error",
            "kind": kind,
            "msg": msg[:500],
            "step": step,
            "model": self.model,
            "http_status": http_status
        })
