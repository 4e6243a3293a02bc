#!/usr/bin/env python3
"""
Progress Reporter - layered run reporting

- L1: console lines (one per translated row, one on completion)
- L2: progress log (<output>.progress.jsonl)
- L3: completion marker (<output>.DONE), written only when a run finishes
"""

import json
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

# Unbuffered progress lines
if hasattr(sys.stdout, 'reconfigure'):
    sys.stdout.reconfigure(line_buffering=True)


class ProgressReporter:
    """Layered progress reporter for one output file."""

    def __init__(self, output_path: str, step: str = "translate"):
        self.step = step
        self.output_path = str(output_path)
        self.processed_items = 0
        self.start_time = datetime.now()

        self.progress_path = self.output_path + ".progress.jsonl"
        self.done_path = self.output_path + ".DONE"

        os.makedirs(os.path.dirname(self.output_path) or ".", exist_ok=True)

        # A stale marker would claim an unfinished output is complete
        if os.path.exists(self.done_path):
            os.remove(self.done_path)

    def start(self, metadata: Dict[str, Any] = None):
        self._write_progress("step_start", {**(metadata or {})})
        self._print(f"🚀 [{self.step}] Starting - output {self.output_path}")

    def row_complete(self, code: str, label: str, label_en: Optional[str], label_de: Optional[str]):
        """One line per translated row: source text and both translations."""
        self.processed_items += 1
        self._write_progress("row_complete", {
            "code": code,
            "processed_items": self.processed_items,
        })
        self._print(f"🔁 Translation: {label} en -> {label_en!r} - de -> {label_de!r}")

    def limit_reached(self, limit: int, policy: str):
        self._write_progress("limit_reached", {"limit": limit, "policy": policy})
        self._print(f"⏹️ [{self.step}] Limit of {limit} rows reached (policy: {policy})")

    def complete(self, summary: Dict[str, Any]):
        elapsed = (datetime.now() - self.start_time).total_seconds()
        self._write_progress("step_complete", {"elapsed_seconds": elapsed, **summary})
        self._write_done(summary, elapsed)
        self._print(f"✅ Translated file: {self.output_path}")

    def error(self, error_msg: str):
        """Log a fatal error; the DONE marker is left absent."""
        self._write_progress("error", {"error": error_msg, "fatal": True})

    def _write_progress(self, event: str, data: Dict[str, Any]):
        record = {
            "timestamp": datetime.now().isoformat(),
            "step": self.step,
            "event": event,
            **data
        }
        with open(self.progress_path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(record, ensure_ascii=False) + '\n')

    def _write_done(self, summary: Dict[str, Any], elapsed: float):
        with open(self.done_path, 'w', encoding='utf-8') as f:
            f.write(f"Completed at {datetime.now().isoformat()}\n")
            for key, value in summary.items():
                f.write(f"{key}: {value}\n")
            f.write(f"Elapsed: {elapsed:.1f}s\n")

    def _print(self, msg: str):
        print(msg)
        sys.stdout.flush()
