#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Unit tests for llm_client.py. Uses a mocked session, never real HTTP.
"""

import json
import os
import tempfile
import unittest
from unittest.mock import Mock, patch

import requests

from scenario_sync.llm_client import (
    LLMClient,
    LLMError,
    _extract_usage,
    _trace,
    load_api_key_file,
)


def ok_response(content="hello", usage=None):
    resp = Mock()
    resp.status_code = 200
    data = {"id": "req-1", "choices": [{"message": {"content": content}}]}
    if usage:
        data["usage"] = usage
    resp.json.return_value = data
    resp.text = json.dumps(data)
    return resp


def error_response(status, text="error"):
    resp = Mock()
    resp.status_code = status
    resp.text = text
    return resp


class TestLLMClient(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.env = patch.dict(os.environ, {"LLM_TRACE_PATH": os.path.join(self.temp_dir, "t.jsonl")})
        self.env.start()
        self.session = Mock()
        self.client = LLMClient("http://llm.test/v1/", "sk-test", "m1", timeout_s=5,
                                session=self.session)

    def tearDown(self):
        self.env.stop()
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_config(self):
        with self.assertRaises(LLMError) as ctx:
            LLMClient("", "key", "m")
        self.assertEqual(ctx.exception.kind, "config")
        self.assertFalse(ctx.exception.retryable)
        with self.assertRaises(LLMError):
            LLMClient("http://x", "key", "")

    def test_chat_success(self):
        self.session.post.return_value = ok_response(
            "translated", usage={"prompt_tokens": 3, "completion_tokens": 2})

        result = self.client.chat(system="s", user="u", metadata={"step": "translate"})

        self.assertEqual(result.text, "translated")
        self.assertEqual(result.request_id, "req-1")
        self.assertEqual(result.usage["total_tokens"], 5)
        url = self.session.post.call_args[0][0]
        self.assertEqual(url, "http://llm.test/v1/chat/completions")
        payload = self.session.post.call_args[1]["json"]
        self.assertEqual(payload["model"], "m1")
        self.assertEqual(payload["messages"][1]["content"], "u")
        self.assertEqual(set(payload), {"model", "temperature", "messages"})

    def test_trace_written(self):
        self.session.post.return_value = ok_response()
        self.client.chat(system="s", user="u", metadata={"step": "translate", "batch_idx": 1})
        with open(os.environ["LLM_TRACE_PATH"], encoding="utf-8") as f:
            event = json.loads(f.readline())
        self.assertEqual(event["type"], "llm_call")
        self.assertEqual(event["meta"], {"batch_idx": 1})

    def test_upstream_error_is_retryable(self):
        self.session.post.return_value = error_response(503)
        with self.assertRaises(LLMError) as ctx:
            self.client.chat(system="s", user="u")
        self.assertEqual(ctx.exception.kind, "upstream")
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.http_status, 503)

    def test_client_error_is_not_retryable(self):
        self.session.post.return_value = error_response(401)
        with self.assertRaises(LLMError) as ctx:
            self.client.chat(system="s", user="u")
        self.assertEqual(ctx.exception.kind, "http")
        self.assertFalse(ctx.exception.retryable)

    def test_timeout_and_network(self):
        self.session.post.side_effect = requests.Timeout("slow")
        with self.assertRaises(LLMError) as ctx:
            self.client.chat(system="s", user="u")
        self.assertEqual(ctx.exception.kind, "timeout")

        self.session.post.side_effect = requests.ConnectionError("down")
        with self.assertRaises(LLMError) as ctx:
            self.client.chat(system="s", user="u")
        self.assertEqual(ctx.exception.kind, "network")

    def test_parse_error(self):
        resp = Mock(status_code=200, text="{}")
        resp.json.return_value = {"choices": []}
        self.session.post.return_value = resp
        with self.assertRaises(LLMError) as ctx:
            self.client.chat(system="s", user="u")
        self.assertEqual(ctx.exception.kind, "parse")


class TestHelpers(unittest.TestCase):

    def test_extract_usage(self):
        self.assertIsNone(_extract_usage({}))
        self.assertEqual(_extract_usage({"usage": {"prompt_tokens": 10}}),
                         {"prompt_tokens": 10, "completion_tokens": 0, "total_tokens": 10})

    def test_trace_disabled_with_empty_path(self):
        with patch.dict(os.environ, {"LLM_TRACE_PATH": ""}):
            _trace({"type": "test"})  # must not raise

    def test_api_key_file_formats(self):
        with tempfile.TemporaryDirectory() as d:
            labelled = os.path.join(d, "a.txt")
            with open(labelled, "w", encoding="utf-8") as f:
                f.write("provider: x\napi key: sk-123\n")
            bare = os.path.join(d, "b.txt")
            with open(bare, "w", encoding="utf-8") as f:
                f.write("sk-456\n")

            self.assertEqual(load_api_key_file(labelled), "sk-123")
            self.assertEqual(load_api_key_file(bare), "sk-456")
            self.assertEqual(load_api_key_file(os.path.join(d, "missing")), "")
            self.assertEqual(load_api_key_file(""), "")


if __name__ == "__main__":
    unittest.main()
