"""Resumable run state: how many input records are already in the output."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict


def default_checkpoint_path(output_path) -> Path:
    p = Path(output_path)
    return p.with_name(p.name + ".checkpoint.json")


def empty_checkpoint() -> Dict[str, Any]:
    return {"offset": 0, "last_code": None, "stats": {"ok": 0, "passed": 0, "dropped": 0}}


def load_checkpoint(path) -> Dict[str, Any]:
    if Path(path).exists():
        with open(path, "r", encoding="utf-8") as f:
            ckpt = json.load(f)
        base = empty_checkpoint()
        base["offset"] = int(ckpt.get("offset", 0))
        base["last_code"] = ckpt.get("last_code")
        base["stats"].update(ckpt.get("stats", {}))
        return base
    return empty_checkpoint()


def save_checkpoint(path, ckpt: Dict[str, Any]) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    ckpt["updated_at"] = datetime.now().isoformat()
    tmp = Path(str(path) + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(ckpt, f, ensure_ascii=False, indent=2)
    tmp.replace(path)


class Checkpoint:
    """
    Per-row completion record.

    Rows reach the output in input order, so the written rows are always the
    first ``offset`` records of the input. ``mark_done`` is called after each
    row is written and saves immediately, so an aborted run never forgets a
    written row. A resumed run skips exactly the first ``offset`` records;
    codes may repeat anywhere in the table.
    """

    def __init__(self, path, resume: bool = False):
        self.path = Path(path)
        if resume:
            self.data = load_checkpoint(self.path)
        else:
            self.data = empty_checkpoint()
            if self.path.exists():
                self.path.unlink()
        self.resume_offset = self.offset

    @property
    def offset(self) -> int:
        return self.data["offset"]

    @property
    def stats(self) -> Dict[str, int]:
        return self.data["stats"]

    @property
    def translated_count(self) -> int:
        return self.stats["ok"]

    def is_done(self, record_index: int) -> bool:
        """True for records (0-based) written by an earlier run."""
        return record_index < self.resume_offset

    def mark_done(self, code: str, stat: str = "ok") -> None:
        self.data["offset"] += 1
        self.data["last_code"] = code
        self.stats[stat] = self.stats.get(stat, 0) + 1
        save_checkpoint(self.path, self.data)

    def count(self, stat: str) -> None:
        """Bump a counter for rows that never reach the output."""
        self.stats[stat] = self.stats.get(stat, 0) + 1
