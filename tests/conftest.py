"""Pytest configuration and shared fixtures for scenario-sync tests."""
import json
import sys
from pathlib import Path

import pytest

# Make the package importable without installing it
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scenario_sync.config import TranslationConfig  # noqa: E402
from scenario_sync.orchestrator import RunPolicy  # noqa: E402


def scenario_csv(json_url, lines=(("1", "Lyria", "Hello"), ("2", "Vyrn", "Let's go!")), trans=""):
    """Build scenario CSV text with an info row pointing at ``json_url``."""
    out = ["id,name,text,trans"]
    for row_id, name, text in lines:
        out.append(f"{row_id},{name},{text},{trans}")
    if json_url is not None:
        out.append(f"info,{json_url},,")
    return "\n".join(out) + "\n"


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=None):
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Maps URL -> FakeResponse (or exception) and records requested URLs."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        resp = self.routes.get(url)
        if isinstance(resp, Exception):
            raise resp
        if resp is None:
            return FakeResponse({"error": "not found"}, status_code=404)
        return resp


class RecordingTranslator:
    """Transform stub: records calls and marks every line as translated."""

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def __call__(self, content, config):
        self.calls.append(content)
        if self.fail_on and self.fail_on in content:
            from scenario_sync.errors import TranslationError
            raise TranslationError("model refused")
        return content.replace(",\n", ",TRANSLATED\n")


@pytest.fixture
def make_scenario():
    return scenario_csv


@pytest.fixture
def translation_config():
    return TranslationConfig(base_url="http://llm.test/v1", api_key="sk-test", model="test-model",
                             batch_size=2, max_retries=1)


@pytest.fixture
def translator():
    return RecordingTranslator()


@pytest.fixture
def source_dir(tmp_path):
    d = tmp_path / "untranslated"
    d.mkdir()
    return d


@pytest.fixture
def dest_dir(tmp_path):
    return tmp_path / "translated"


@pytest.fixture
def folder_policy(source_dir, dest_dir):
    return RunPolicy(source_dir=source_dir, dest_folder=dest_dir)
