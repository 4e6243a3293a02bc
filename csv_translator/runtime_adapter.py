#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
runtime_adapter.py

A thin DeepL adapter:
- Form-encoded POST to the /v2/translate endpoint
- Standardized errors and retry hints
- Trace logging with target_lang, latency and http status

Env:
  DEEPL_API_KEY, DEEPL_API_KEY_FILE, DEEPL_ENDPOINT
  DEEPL_TIMEOUT_S (default: no timeout)
  DEEPL_TRACE_PATH (optional, tracing disabled when empty)
"""

from __future__ import annotations
import json
import os
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

import requests


DEEPL_FREE_ENDPOINT = "https://api-free.deepl.com/v2/translate"
DEFAULT_SOURCE_LANG = "FR"

RETRYABLE_STATUS = (429, 500, 502, 503, 504)
QUOTA_EXCEEDED_STATUS = 456


@dataclass
class TranslateResult:
    """Result of a successful translate call."""
    text: str
    latency_ms: int
    target_lang: str
    raw: Optional[dict] = None
    detected_source_language: Optional[str] = None
    attempts: int = 1


class TranslateError(Exception):
    """
    Standardized translation error with retry hints.

    Kinds:
      - config: Missing API key (not retryable)
      - timeout: Request timeout (retryable)
      - network: Network error (retryable)
      - upstream: Server error 429/5xx (retryable)
      - quota: DeepL character quota exceeded, HTTP 456 (not retryable)
      - http: Client error 4xx (not retryable)
      - parse: Response body is not JSON (not retryable)
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
    path = os.getenv("DEEPL_TRACE_PATH", "").strip()
    if not path:
        return
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        event["timestamp"] = datetime.now().isoformat()
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")
    except OSError:
        pass  # Tracing should never break the main flow


def extract_translation(data: Any) -> str:
    """
    Pull translations[0].text out of a decoded DeepL response.

    Any unexpected shape yields "" rather than an error: an absent field and a
    present-but-empty translation are the same thing to the caller.
    """
    if not isinstance(data, dict):
        return ""
    translations = data.get("translations")
    if not isinstance(translations, list) or not translations:
        return ""
    first = translations[0]
    if not isinstance(first, dict):
        return ""
    text = first.get("text")
    return text if isinstance(text, str) else ""


def backoff_sleep(attempt: int) -> None:
    base = min(2 ** attempt, 30)
    jitter = random.uniform(0.2, 1.0)
    time.sleep(base * jitter)


def load_api_key() -> str:
    """
    Load API key with file-based injection support.

    Priority:
        1. DEEPL_API_KEY_FILE: Read key from file (supports "api key: xxx" format)
        2. DEEPL_API_KEY: Direct environment variable

    Returns:
        API key string (may be empty if not configured)
    """
    key_file = os.getenv("DEEPL_API_KEY_FILE", "").strip()
    if key_file and os.path.exists(key_file):
        try:
            with open(key_file, 'r', encoding='utf-8') as f:
                content = f.read().strip()
        except OSError as e:
            _trace({
                "type": "api_key_file_error",
                "path": key_file,
                "error": str(e)
            })
            content = ""

        for line in content.splitlines():
            line = line.strip()
            if line.lower().startswith(("api key:", "api_key:")):
                return line.split(":", 1)[1].strip()

        # Single-line file holding just the key (DeepL free keys end in ":fx")
        if content and '\n' not in content and ' ' not in content:
            return content

    return os.getenv("DEEPL_API_KEY", "")


class DeepLClient:
    """
    Blocking DeepL client.

    Usage:
        from csv_translator.runtime_adapter import DeepLClient, TranslateError

        with DeepLClient(api_key="...") as client:
            try:
                text = client.translate("Bonjour", "EN")
            except TranslateError as e:
                if e.retryable:
                    ...
                raise

    The requests.Session is owned by the client and closed on exit.
    """

    def __init__(self,
                 api_key: Optional[str] = None,
                 endpoint: Optional[str] = None,
                 source_lang: str = DEFAULT_SOURCE_LANG,
                 timeout_s: Optional[float] = None,
                 max_retries: int = 0,
                 session: Optional[requests.Session] = None):
        """
        Initialize client. Parameters can be passed directly or via environment.

        Priority: explicit parameter > environment variable
        """
        self.api_key = (api_key or load_api_key()).strip()
        self.endpoint = (endpoint or os.getenv("DEEPL_ENDPOINT", "") or DEEPL_FREE_ENDPOINT).strip()
        self.source_lang = source_lang
        env_timeout = os.getenv("DEEPL_TIMEOUT_S", "").strip()
        self.timeout_s = timeout_s if timeout_s is not None else (float(env_timeout) if env_timeout else None)
        self.max_retries = max_retries
        if not self.api_key:
            raise TranslateError(
                "config",
                "Missing DeepL API key. Pass --api-key or set DEEPL_API_KEY",
                retryable=False
            )

        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()

    def __enter__(self) -> "DeepLClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def translate(self, text: str, target_lang: str) -> str:
        """Translate text into target_lang; see translate_detailed()."""
        return self.translate_detailed(text, target_lang).text

    def translate_detailed(self, text: str, target_lang: str) -> TranslateResult:
        """
        Translate with retries on retryable errors.

        max_retries=0 means a single attempt: the first error propagates.
        """
        last_error: Optional[TranslateError] = None
        for attempt in range(self.max_retries + 1):
            try:
                result = self._call_once(text, target_lang)
                result.attempts = attempt + 1
                return result
            except TranslateError as e:
                last_error = e
                if not e.retryable or attempt >= self.max_retries:
                    raise
                _trace({
                    "type": "translate_retry",
                    "target_lang": target_lang,
                    "attempt_no": attempt,
                    "kind": e.kind,
                    "http_status": e.http_status,
                })
                backoff_sleep(attempt)

        # Loop always returns or raises; kept for type checkers
        raise last_error  # type: ignore[misc]

    def _call_once(self, text: str, target_lang: str) -> TranslateResult:
        """Execute a single POST with full tracing."""
        form = {
            "auth_key": self.api_key,
            "text": text,
            "source_lang": self.source_lang,
            "target_lang": target_lang,
        }

        t0 = time.time()
        try:
            resp = self.session.post(self.endpoint, data=form, timeout=self.timeout_s)
        except requests.Timeout as e:
            self._trace_error("timeout", str(e), target_lang)
            raise TranslateError("timeout", f"Request timeout after {self.timeout_s}s: {e}",
                                 retryable=True)
        except requests.RequestException as e:
            self._trace_error("network", str(e), target_lang)
            raise TranslateError("network", f"Network error: {e}", retryable=True)

        latency_ms = int((time.time() - t0) * 1000)

        if resp.status_code == QUOTA_EXCEEDED_STATUS:
            self._trace_error("quota", resp.text[:500], target_lang, http_status=resp.status_code)
            raise TranslateError("quota", "DeepL quota exceeded (HTTP 456)",
                                 retryable=False, http_status=resp.status_code)

        if resp.status_code in RETRYABLE_STATUS:
            self._trace_error("upstream", resp.text[:500], target_lang, http_status=resp.status_code)
            raise TranslateError(
                "upstream",
                f"Upstream error HTTP {resp.status_code}: {resp.text[:200]}",
                retryable=True,
                http_status=resp.status_code
            )

        if not 200 <= resp.status_code < 300:
            self._trace_error("http", resp.text[:500], target_lang, http_status=resp.status_code)
            raise TranslateError(
                "http",
                f"HTTP error {resp.status_code}: {resp.text[:200]}",
                retryable=False,
                http_status=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as e:
            self._trace_error("parse", str(e), target_lang, http_status=resp.status_code)
            raise TranslateError("parse", f"Response parse error: {e}",
                                 retryable=False, http_status=resp.status_code)

        translated = extract_translation(data)
        detected = None
        if isinstance(data, dict) and isinstance(data.get("translations"), list) and data["translations"]:
            first = data["translations"][0]
            if isinstance(first, dict):
                detected = first.get("detected_source_language")

        _trace({
            "type": "translate_call",
            "target_lang": target_lang,
            "source_lang": self.source_lang,
            "latency_ms": latency_ms,
            "http_status": resp.status_code,
            "req_chars": len(text),
            "resp_chars": len(translated),
            "empty_translation": translated == "",
        })

        return TranslateResult(
            text=translated,
            latency_ms=latency_ms,
            target_lang=target_lang,
            raw=data if isinstance(data, dict) else None,
            detected_source_language=detected,
        )

    def _trace_error(self, kind: str, msg: str, target_lang: str,
                     http_status: Optional[int] = None) -> None:
        _trace({
            "type": "translate_error",
            "kind": kind,
            "msg": msg[:500],
            "target_lang": target_lang,
            "endpoint": self.endpoint,
            "http_status": http_status,
        })
