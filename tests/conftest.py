"""Pytest configuration and shared fixtures for csv-translator tests."""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Make the package importable without installation
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from csv_translator.rate_limiter import RateLimiter  # noqa: E402
from csv_translator.runtime_adapter import TranslateError  # noqa: E402


@pytest.fixture(autouse=True)
def clean_deepl_env(monkeypatch):
    """Keep the caller's DEEPL_* settings out of every test."""
    for name in ("DEEPL_API_KEY", "DEEPL_API_KEY_FILE", "DEEPL_ENDPOINT",
                 "DEEPL_TIMEOUT_S", "DEEPL_TRACE_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_table(tmp_path):
    """Write a delimited table and return its path."""
    def _write(lines, name="data.csv"):
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


def make_response(status=200, body=None, json_error=None, text=""):
    """Build a requests.Response stand-in."""
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def response_factory():
    """Factory for mocked requests.Response objects."""
    return make_response


class FakeDeepL:
    """
    In-memory stand-in for DeepLClient.

    Returns "<LANG>:<text>" and records every call. ``fail_on_call`` makes the
    n-th call (1-based) raise an upstream HTTP 500 error.
    """

    def __init__(self, fail_on_call=None):
        self.calls = []
        self.fail_on_call = fail_on_call

    def translate(self, text, target_lang):
        self.calls.append((text, target_lang))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise TranslateError("upstream", "Upstream error HTTP 500: boom",
                                 retryable=True, http_status=500)
        return f"{target_lang}:{text}"


class CountingLimiter(RateLimiter):
    """Rate limiter that only counts waits."""

    def __init__(self):
        self.waits = 0

    def wait(self):
        self.waits += 1


@pytest.fixture
def fake_client():
    return FakeDeepL()


@pytest.fixture
def limiter():
    return CountingLimiter()
