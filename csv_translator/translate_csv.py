#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
translate_csv.py
Purpose:
  Translate the French ``label`` column of a delimited table into English and
  German with DeepL, writing ``<input stem>.translated.csv`` with two extra
  columns ``label_en`` and ``label_de``:
  - one blocking request per target language, paced by a rate limiter
  - optional row limit with an explicit over-limit policy (stop | drop | pass)
  - checkpoint/resume keyed by input record offset

Usage:
  csv-translate data/products.csv -k "$DEEPL_API_KEY" -s ";" -n 500
  python -m csv_translator data/products.csv --resume --over-limit pass

Environment:
  DEEPL_API_KEY      API key (instead of --api-key)
  DEEPL_API_KEY_FILE file holding the key ("api key: xxx" or bare key)
  DEEPL_ENDPOINT     e.g. https://api.deepl.com/v2/translate for Pro keys
  DEEPL_TIMEOUT_S    request timeout in seconds
  DEEPL_TRACE_PATH   JSONL trace of every request
"""

import argparse
import contextlib
import itertools
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from .checkpoint import Checkpoint, default_checkpoint_path
from .config_loader import DEFAULT_LIMIT, OVER_LIMIT_POLICIES, TranslatorConfig, load_config
from .progress_reporter import ProgressReporter
from .rate_limiter import FixedDelay, RateLimiter, build_rate_limiter
from .records import RecordDecodeError, Row, RowWriter, iter_rows, output_path_for
from .runtime_adapter import DeepLClient, TranslateError

# (DeepL target_lang, Row attribute), in request order
TARGETS = (("EN", "label_en"), ("DE", "label_de"))


@dataclass
class RunSummary:
    """Counts for one run."""
    output_path: str
    translated: int = 0
    passed: int = 0
    dropped: int = 0
    skipped: int = 0
    limit_reached: bool = False


def translate_row(row: Row, client: DeepLClient, rate_limiter: RateLimiter) -> Row:
    """Fill label_en then label_de, pausing after each request."""
    for target_lang, attr in TARGETS:
        setattr(row, attr, client.translate(row.label, target_lang))
        rate_limiter.wait()
    return row


def run(input_path,
        separator: str = ";",
        api_key: Optional[str] = None,
        limit: Optional[int] = DEFAULT_LIMIT,
        over_limit: str = "stop",
        resume: bool = False,
        checkpoint_path: Optional[str] = None,
        client: Optional[DeepLClient] = None,
        rate_limiter: Optional[RateLimiter] = None) -> RunSummary:
    """
    Translate every row of ``input_path`` up to ``limit``.

    Any TranslateError, RecordDecodeError or OSError aborts the run. Rows
    already written stay in the output and in the checkpoint; the DONE marker
    is only written when the loop finishes.
    """
    if over_limit not in OVER_LIMIT_POLICIES:
        raise ValueError(f"over_limit must be one of {', '.join(OVER_LIMIT_POLICIES)}")

    input_path = Path(input_path)
    output_path = output_path_for(input_path)
    rate_limiter = rate_limiter if rate_limiter is not None else FixedDelay()
    summary = RunSummary(output_path=str(output_path))

    with contextlib.ExitStack() as stack:
        if client is None:
            client = stack.enter_context(DeepLClient(api_key=api_key))

        src = stack.enter_context(open(input_path, "r", encoding="utf-8-sig", newline=""))
        rows = iter_rows(src, separator)
        # Decode the header and first record before touching the output file
        first = next(rows, None)
        if first is not None:
            rows = itertools.chain([first], rows)

        # Without an output to append to, a checkpoint would skip rows nobody wrote
        appending = resume and output_path.exists() and output_path.stat().st_size > 0
        checkpoint = Checkpoint(checkpoint_path or default_checkpoint_path(output_path), resume=appending)
        dst = stack.enter_context(open(output_path, "a" if appending else "w", encoding="utf-8", newline=""))
        writer = RowWriter(dst, separator, write_header=not appending)

        reporter = ProgressReporter(str(output_path))
        reporter.start({
            "input": str(input_path),
            "separator": separator,
            "limit": limit,
            "over_limit": over_limit,
            "resume": resume,
            "previously_translated": checkpoint.translated_count,
        })

        try:
            for record_index, row in enumerate(rows):
                if checkpoint.is_done(record_index):
                    summary.skipped += 1
                    continue

                if limit is not None and checkpoint.translated_count >= limit:
                    if not summary.limit_reached:
                        summary.limit_reached = True
                        reporter.limit_reached(limit, over_limit)
                    if over_limit == "stop":
                        break
                    if over_limit == "drop":
                        checkpoint.count("dropped")
                        summary.dropped += 1
                        continue
                    writer.write(row)
                    checkpoint.mark_done(row.code, "passed")
                    summary.passed += 1
                    continue

                translate_row(row, client, rate_limiter)
                reporter.row_complete(row.code, row.label, row.label_en, row.label_de)
                writer.write(row)
                checkpoint.mark_done(row.code)
                summary.translated += 1
        except (TranslateError, RecordDecodeError, OSError) as e:
            reporter.error(str(e))
            raise

        dst.flush()
        reporter.complete({k: v for k, v in asdict(summary).items() if k != "output_path"})

    return summary


def run_with_config(input_path, config: TranslatorConfig) -> RunSummary:
    """Build the client and rate limiter from a resolved config, then run()."""
    with DeepLClient(
        api_key=config.api_key,
        endpoint=config.endpoint,
        source_lang=config.source_lang,
        timeout_s=config.timeout_s,
        max_retries=config.max_retries,
    ) as client:
        return run(
            input_path,
            separator=config.separator,
            limit=config.limit,
            over_limit=config.over_limit,
            resume=config.resume,
            checkpoint_path=config.checkpoint,
            client=client,
            rate_limiter=build_rate_limiter(config.rate_limit),
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csv-translate",
        description="Translate the label column of a CSV file FR -> EN/DE with DeepL",
    )
    parser.add_argument("input", help="Input CSV file")
    parser.add_argument("-s", "--separator", default=None, help="Field separator (default: ';', '\\t' for tab)")
    parser.add_argument("-k", "--api-key", default=None, help="DeepL API key (or DEEPL_API_KEY)")
    parser.add_argument("-n", "--limit", type=int, default=None, help=f"Max rows to translate (default: {DEFAULT_LIMIT})")
    parser.add_argument("--no-limit", action="store_true", help="Translate every row")
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--endpoint", default=None, help="DeepL translate endpoint")
    parser.add_argument("--source-lang", default=None, help="Source language (default: FR)")
    parser.add_argument("--over-limit", choices=OVER_LIMIT_POLICIES, default=None,
                        help="What to do with rows past the limit (default: stop)")
    parser.add_argument("--delay", type=float, default=None, help="Fixed pause after each request, seconds (default: 0.5)")
    parser.add_argument("--rate", type=float, default=None, help="Token-bucket rate, requests per second")
    parser.add_argument("--burst", type=int, default=None, help="Token-bucket burst size (default: 1)")
    parser.add_argument("--max-retries", type=int, default=None, help="Retries for timeouts/429/5xx (default: 0)")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout, seconds")
    parser.add_argument("--resume", action="store_true", default=None, help="Skip rows recorded in the checkpoint")
    parser.add_argument("--checkpoint", default=None, help="Checkpoint JSON (default: <output>.checkpoint.json)")
    return parser


def _rate_limit_override(args) -> Optional[dict]:
    if args.rate is not None:
        return {"policy": "token_bucket", "rate_per_s": args.rate, "burst": args.burst if args.burst is not None else 1}
    if args.delay is not None:
        return {"policy": "fixed", "delay_s": args.delay}
    return None


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.burst is not None and args.rate is None:
        parser.error("--burst requires --rate")
    if args.delay is not None and args.rate is not None:
        parser.error("--delay and --rate are mutually exclusive")

    separator = args.separator
    if separator == "\\t":
        separator = "\t"

    try:
        config = load_config(args.config, {
            "separator": separator,
            "api_key": args.api_key,
            "limit": args.limit,
            "endpoint": args.endpoint,
            "source_lang": args.source_lang,
            "over_limit": args.over_limit,
            "rate_limit": _rate_limit_override(args),
            "max_retries": args.max_retries,
            "timeout_s": args.timeout,
            "resume": args.resume,
            "checkpoint": args.checkpoint,
        })
    except (ValueError, OSError) as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        return 1

    if args.no_limit:
        config.limit = None
    if not config.api_key:
        parser.error("the following arguments are required: -k/--api-key (or set DEEPL_API_KEY)")

    if not Path(args.input).exists():
        print(f"❌ Input file not found: {args.input}", file=sys.stderr)
        return 1

    try:
        summary = run_with_config(args.input, config)
    except TranslateError as e:
        print(f"❌ Translation failed ({e.kind}): {e}", file=sys.stderr)
        return 1
    except RecordDecodeError as e:
        print(f"❌ Could not decode {args.input}: {e}", file=sys.stderr)
        return 1
    except (ValueError, OSError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("⚠️ Interrupted; rerun with --resume to continue", file=sys.stderr)
        return 130

    print(f"[DONE] translated={summary.translated} passed={summary.passed} "
          f"dropped={summary.dropped} skipped={summary.skipped}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
