"""
Run configuration.

Settings are resolved once at startup from, in order of precedence:
environment variables, an optional YAML file, built-in defaults. Core
components never read the environment themselves; they get the frozen
objects built here.

Example config/sync.yaml:

    llm:
      base_url: https://api.openai.com/v1
      model: gpt-4o-mini
      timeout_s: 60
    translation:
      source_language: ja-JP
      target_language: zh-CN
      batch_size: 30
      max_retries: 2
      glossary: config/glossary.yaml
    remote:
      diff_endpoint: https://assets.example.com/diff
      asset_endpoint: https://assets.example.com/raw
      timeout_s: 30
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .llm_client import load_api_key_file

DEFAULT_CONFIG_PATH = "config/sync.yaml"


@dataclass(frozen=True)
class TranslationConfig:
    """Passed unchanged to the translation transform; shared by all units."""
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    timeout_s: int = 60
    source_language: str = "ja-JP"
    target_language: str = "zh-CN"
    batch_size: int = 30
    max_retries: int = 2
    glossary: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RemoteEndpoints:
    diff_endpoint: str = ""
    asset_endpoint: str = ""
    timeout_s: int = 30

    def diff_url(self, tag: str) -> str:
        """Diff manifest URL for a version marker ("-1" means latest)."""
        return f"{self.diff_endpoint}?latest={tag}"

    def require(self) -> None:
        if not self.diff_endpoint or not self.asset_endpoint:
            raise ConfigError(
                "Remote diff mode needs REMOTE_DIFF_ENDPOINT and REMOTE_ASSET_ENDPOINT "
                "(or remote.diff_endpoint / remote.asset_endpoint in the config file)"
            )


@dataclass(frozen=True)
class Settings:
    translation: TranslationConfig
    endpoints: RemoteEndpoints


def _load_yaml(path: str, explicit: bool) -> Dict[str, Any]:
    if not Path(path).exists():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must hold a mapping: {path}")
    return data


def load_glossary(path: str) -> Dict[str, str]:
    """
    Load a glossary YAML as source term -> target term.

    Accepts either a flat mapping or ``entries: [{term_src, term_dst}]``.
    Entries with status ``banned`` are dropped.
    """
    if not path:
        return {}
    data = _load_yaml(path, explicit=True)
    if "entries" in data and isinstance(data["entries"], list):
        glossary = {}
        for it in data["entries"]:
            if not isinstance(it, dict):
                continue
            src = str(it.get("term_src") or "").strip()
            dst = str(it.get("term_dst") or "").strip()
            status = str(it.get("status") or "approved").strip().lower()
            if src and dst and status != "banned":
                glossary[src] = dst
        return glossary
    return {str(k).strip(): str(v).strip() for k, v in data.items() if k and v}


def _int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def load_settings(config_path: Optional[str] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve settings from env vars, YAML file and defaults."""
    env = os.environ if environ is None else environ
    data = _load_yaml(config_path or DEFAULT_CONFIG_PATH, explicit=bool(config_path))

    llm = data.get("llm") or {}
    tr = data.get("translation") or {}
    remote = data.get("remote") or {}

    def pick(env_name: str, section: Dict[str, Any], key: str, default: Any = "") -> Any:
        value = env.get(env_name, "").strip()
        if value:
            return value
        value = section.get(key)
        return default if value is None or value == "" else value

    api_key = env.get("LLM_API_KEY", "").strip()
    if not api_key:
        api_key = load_api_key_file(pick("LLM_API_KEY_FILE", llm, "api_key_file"))
    if not api_key:
        api_key = str(llm.get("api_key") or "")

    batch_size = _int(pick("TRANSLATE_BATCH_SIZE", tr, "batch_size", 30), "batch_size")
    if batch_size < 1:
        raise ConfigError("batch_size must be at least 1")

    translation = TranslationConfig(
        base_url=str(pick("LLM_BASE_URL", llm, "base_url")),
        api_key=api_key,
        model=str(pick("LLM_MODEL", llm, "model")),
        timeout_s=_int(pick("LLM_TIMEOUT_S", llm, "timeout_s", 60), "LLM_TIMEOUT_S"),
        source_language=str(pick("TRANSLATE_SOURCE_LANG", tr, "source_language", "ja-JP")),
        target_language=str(pick("TRANSLATE_TARGET_LANG", tr, "target_language", "zh-CN")),
        batch_size=batch_size,
        max_retries=_int(pick("TRANSLATE_MAX_RETRIES", tr, "max_retries", 2), "max_retries"),
        glossary=load_glossary(str(pick("TRANSLATE_GLOSSARY", tr, "glossary"))),
    )
    endpoints = RemoteEndpoints(
        diff_endpoint=str(pick("REMOTE_DIFF_ENDPOINT", remote, "diff_endpoint")),
        asset_endpoint=str(pick("REMOTE_ASSET_ENDPOINT", remote, "asset_endpoint")),
        timeout_s=_int(pick("REMOTE_TIMEOUT_S", remote, "timeout_s", 30), "REMOTE_TIMEOUT_S"),
    )
    return Settings(translation=translation, endpoints=endpoints)
