#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_runtime_adapter.py

Unit tests for runtime_adapter.py. Uses a mocked requests.Session, so no
HTTP request leaves the process.

Test Coverage:
- DeepLClient initialization (env vars, key file, explicit params, config errors)
- Form body sent to the endpoint
- Lenient response-shape handling
- Error kinds for transport, HTTP status and JSON failures
- Retry behaviour (off by default)
- Trace recording (_trace function)
"""

import json
import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import requests

from csv_translator.runtime_adapter import (
    DEEPL_FREE_ENDPOINT,
    DeepLClient,
    TranslateError,
    TranslateResult,
    _trace,
    extract_translation,
    load_api_key,
)


def _response(status=200, body=None, json_error=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = body
    return resp


def _client(*responses, **kwargs):
    session = MagicMock()
    session.post.side_effect = list(responses)
    return DeepLClient(api_key="test-key:fx", session=session, **kwargs), session


class TestTranslateError(unittest.TestCase):
    """Test TranslateError exception class."""

    def test_error_creation(self):
        error = TranslateError("timeout", "Request timed out")
        self.assertEqual(error.kind, "timeout")
        self.assertEqual(str(error), "Request timed out")
        self.assertTrue(error.retryable)
        self.assertIsNone(error.http_status)

    def test_error_with_http_status(self):
        error = TranslateError("upstream", "Server error", retryable=True, http_status=503)
        self.assertEqual(error.http_status, 503)


class TestExtractTranslation(unittest.TestCase):
    """Missing or odd fields become an empty translation."""

    def test_first_translation(self):
        data = {"translations": [{"text": "Hello"}, {"text": "Hi"}]}
        self.assertEqual(extract_translation(data), "Hello")

    def test_missing_translations(self):
        self.assertEqual(extract_translation({}), "")
        self.assertEqual(extract_translation({"message": "nope"}), "")

    def test_empty_list(self):
        self.assertEqual(extract_translation({"translations": []}), "")

    def test_unexpected_shapes(self):
        self.assertEqual(extract_translation([]), "")
        self.assertEqual(extract_translation({"translations": "Hello"}), "")
        self.assertEqual(extract_translation({"translations": ["Hello"]}), "")
        self.assertEqual(extract_translation({"translations": [{"text": 42}]}), "")
        self.assertEqual(extract_translation({"translations": [{}]}), "")

    def test_present_but_empty(self):
        self.assertEqual(extract_translation({"translations": [{"text": ""}]}), "")


class TestClientInit(unittest.TestCase):
    """Test DeepLClient configuration."""

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_key_is_config_error(self):
        with self.assertRaises(TranslateError) as ctx:
            DeepLClient(session=MagicMock())
        self.assertEqual(ctx.exception.kind, "config")
        self.assertFalse(ctx.exception.retryable)

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_key_opens_no_session(self):
        with patch("csv_translator.runtime_adapter.requests.Session") as session_cls:
            with self.assertRaises(TranslateError):
                DeepLClient()
        session_cls.assert_not_called()

    @patch.dict(os.environ, {"DEEPL_API_KEY": "env-key", "DEEPL_ENDPOINT": "https://api.deepl.com/v2/translate",
                             "DEEPL_TIMEOUT_S": "12.5"}, clear=True)
    def test_env_settings(self):
        client = DeepLClient(session=MagicMock())
        self.assertEqual(client.api_key, "env-key")
        self.assertEqual(client.endpoint, "https://api.deepl.com/v2/translate")
        self.assertEqual(client.timeout_s, 12.5)

    @patch.dict(os.environ, {"DEEPL_API_KEY": "env-key"}, clear=True)
    def test_explicit_params_win(self):
        client = DeepLClient(api_key="explicit", endpoint="http://localhost/v2/translate",
                             timeout_s=3, session=MagicMock())
        self.assertEqual(client.api_key, "explicit")
        self.assertEqual(client.endpoint, "http://localhost/v2/translate")
        self.assertEqual(client.timeout_s, 3)

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        client = DeepLClient(api_key="k", session=MagicMock())
        self.assertEqual(client.endpoint, DEEPL_FREE_ENDPOINT)
        self.assertEqual(client.source_lang, "FR")
        self.assertIsNone(client.timeout_s)
        self.assertEqual(client.max_retries, 0)

    def test_context_manager_closes_own_session(self):
        with patch("csv_translator.runtime_adapter.requests.Session") as session_cls:
            with DeepLClient(api_key="k"):
                pass
            session_cls.return_value.close.assert_called_once()

    def test_borrowed_session_left_open(self):
        session = MagicMock()
        with DeepLClient(api_key="k", session=session):
            pass
        session.close.assert_not_called()


class TestLoadApiKey(unittest.TestCase):
    """File-based key injection."""

    def test_key_file_with_prefix(self):
        with tempfile.NamedTemporaryFile("w", suffix=".txt", delete=False) as f:
            f.write("# deepl\napi key: file-key:fx\n")
        try:
            with patch.dict(os.environ, {"DEEPL_API_KEY_FILE": f.name, "DEEPL_API_KEY": "env"}, clear=True):
                self.assertEqual(load_api_key(), "file-key:fx")
        finally:
            os.unlink(f.name)

    def test_key_file_bare_key(self):
        with tempfile.NamedTemporaryFile("w", suffix=".txt", delete=False) as f:
            f.write("bare-key:fx\n")
        try:
            with patch.dict(os.environ, {"DEEPL_API_KEY_FILE": f.name}, clear=True):
                self.assertEqual(load_api_key(), "bare-key:fx")
        finally:
            os.unlink(f.name)

    @patch.dict(os.environ, {"DEEPL_API_KEY_FILE": "/nonexistent/key.txt", "DEEPL_API_KEY": "env"}, clear=True)
    def test_missing_file_falls_back_to_env(self):
        self.assertEqual(load_api_key(), "env")


class TestTranslate(unittest.TestCase):
    """DeepLClient.translate() request and response handling."""

    def test_form_body(self):
        client, session = _client(_response(body={"translations": [{"text": "Chair"}]}))
        self.assertEqual(client.translate("Chaise", "EN"), "Chair")

        args, kwargs = session.post.call_args
        self.assertEqual(args[0], DEEPL_FREE_ENDPOINT)
        self.assertEqual(kwargs["data"], {
            "auth_key": "test-key:fx",
            "text": "Chaise",
            "source_lang": "FR",
            "target_lang": "EN",
        })
        self.assertIsNone(kwargs["timeout"])

    def test_missing_translations_is_empty_not_error(self):
        client, _ = _client(_response(body={"unexpected": True}))
        self.assertEqual(client.translate("Chaise", "DE"), "")

    def test_detailed_result(self):
        client, _ = _client(_response(body={"translations": [
            {"text": "Stuhl", "detected_source_language": "FR"}]}))
        result = client.translate_detailed("Chaise", "DE")
        self.assertIsInstance(result, TranslateResult)
        self.assertEqual(result.text, "Stuhl")
        self.assertEqual(result.target_lang, "DE")
        self.assertEqual(result.detected_source_language, "FR")
        self.assertEqual(result.attempts, 1)
        self.assertEqual(result.raw, {"translations": [
            {"text": "Stuhl", "detected_source_language": "FR"}]})

    def test_http_500_is_upstream(self):
        client, session = _client(_response(status=500, text="Internal error"))
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.kind, "upstream")
        self.assertEqual(ctx.exception.http_status, 500)
        self.assertEqual(session.post.call_count, 1)  # no retry by default

    def test_http_403_is_http_error(self):
        client, _ = _client(_response(status=403, text="Forbidden"))
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.kind, "http")
        self.assertFalse(ctx.exception.retryable)

    def test_http_456_is_quota(self):
        client, _ = _client(_response(status=456))
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.kind, "quota")
        self.assertFalse(ctx.exception.retryable)

    def test_malformed_json_is_parse_error(self):
        client, _ = _client(_response(json_error=ValueError("Expecting value")))
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.kind, "parse")

    def test_timeout(self):
        client, _ = _client(requests.Timeout("read timed out"), timeout_s=1)
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.kind, "timeout")
        self.assertTrue(ctx.exception.retryable)

    def test_connection_error(self):
        client, _ = _client(requests.ConnectionError("refused"))
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.kind, "network")


class TestRetries(unittest.TestCase):
    """Retries only when configured and only for retryable errors."""

    @patch("csv_translator.runtime_adapter.backoff_sleep")
    def test_retry_then_success(self, mock_sleep):
        client, session = _client(
            _response(status=503),
            _response(body={"translations": [{"text": "Chair"}]}),
            max_retries=2,
        )
        result = client.translate_detailed("Chaise", "EN")
        self.assertEqual(result.text, "Chair")
        self.assertEqual(result.attempts, 2)
        self.assertEqual(session.post.call_count, 2)
        mock_sleep.assert_called_once_with(0)

    @patch("csv_translator.runtime_adapter.backoff_sleep")
    def test_retries_exhausted(self, mock_sleep):
        client, session = _client(*[_response(status=429)] * 3, max_retries=2)
        with self.assertRaises(TranslateError) as ctx:
            client.translate("Chaise", "EN")
        self.assertEqual(ctx.exception.http_status, 429)
        self.assertEqual(session.post.call_count, 3)
        self.assertEqual(mock_sleep.call_count, 2)

    @patch("csv_translator.runtime_adapter.backoff_sleep")
    def test_non_retryable_not_retried(self, mock_sleep):
        client, session = _client(_response(status=400), max_retries=3)
        with self.assertRaises(TranslateError):
            client.translate("Chaise", "EN")
        self.assertEqual(session.post.call_count, 1)
        mock_sleep.assert_not_called()


class TestTrace(unittest.TestCase):
    """Test _trace JSONL output."""

    def test_trace_disabled_without_path(self):
        with patch.dict(os.environ, {}, clear=True):
            _trace({"type": "noop"})  # must not raise

    def test_trace_written(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "sub", "trace.jsonl")
            with patch.dict(os.environ, {"DEEPL_TRACE_PATH": path}, clear=True):
                client, _ = _client(_response(body={"translations": [{"text": "Chair"}]}))
                client.translate("Chaise", "EN")
            with open(path, encoding="utf-8") as f:
                events = [json.loads(line) for line in f]
        self.assertEqual(events[-1]["type"], "translate_call")
        self.assertEqual(events[-1]["target_lang"], "EN")
        self.assertIn("timestamp", events[-1])
        self.assertNotIn("auth_key", json.dumps(events))


if __name__ == "__main__":
    unittest.main()
