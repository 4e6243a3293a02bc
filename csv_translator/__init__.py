"""
csv_translator - DeepL FR -> EN/DE translation of delimited tables
"""
from .records import Row, RecordDecodeError, output_path_for
from .runtime_adapter import DeepLClient, TranslateError
from .translate_csv import run, run_with_config, RunSummary

__all__ = [
    "Row",
    "RecordDecodeError",
    "output_path_for",
    "DeepLClient",
    "TranslateError",
    "run",
    "run_with_config",
    "RunSummary",
]
