"""Row model and delimited-table codec."""

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, TextIO

REQUIRED_FIELDS = ["code", "label"]
OUTPUT_FIELDS = ["code", "label", "label_en", "label_de"]
OUTPUT_SUFFIX = "translated.csv"


class RecordDecodeError(Exception):
    """Input table could not be decoded into rows."""

    def __init__(self, message: str, line_num: Optional[int] = None):
        if line_num is not None:
            message = f"line {line_num}: {message}"
        super().__init__(message)
        self.line_num = line_num


@dataclass
class Row:
    """One table record."""
    code: str
    label: str
    label_en: Optional[str] = None
    label_de: Optional[str] = None

    @property
    def is_translated(self) -> bool:
        return self.label_en is not None and self.label_de is not None

    def to_cells(self) -> List[str]:
        """Output cells; absent trailing values are omitted, not written empty."""
        cells = [self.code, self.label, self.label_en, self.label_de]
        while cells and cells[-1] is None:
            cells.pop()
        return ["" if c is None else c for c in cells]


def output_path_for(input_path) -> Path:
    """data.csv -> data.translated.csv"""
    p = Path(input_path)
    return p.with_name(f"{p.stem}.{OUTPUT_SUFFIX}") if p.suffix else p.with_name(f"{p.name}.{OUTPUT_SUFFIX}")


def iter_rows(handle: TextIO, separator: str) -> Iterator[Row]:
    """
    Stream Rows from an open table.

    The header must name ``code`` and ``label``. Every record must carry as
    many fields as the header; anything else raises RecordDecodeError. Blank
    lines are skipped. Columns other than the four Row fields are ignored.
    """
    reader = csv.reader(handle, delimiter=separator)
    try:
        header = next(reader)
    except StopIteration:
        raise RecordDecodeError("input is empty, expected a header row")
    except csv.Error as e:
        raise RecordDecodeError(str(e), reader.line_num)
    except UnicodeDecodeError as e:
        raise RecordDecodeError(f"input is not valid {e.encoding} text ({e.reason})", reader.line_num or None)

    header = [h.strip() for h in header]
    missing = [f for f in REQUIRED_FIELDS if f not in header]
    if missing:
        raise RecordDecodeError(
            f"header {header!r} is missing field(s) {', '.join(missing)} "
            f"(separator {separator!r})",
            reader.line_num,
        )
    positions = {name: header.index(name) for name in OUTPUT_FIELDS if name in header}

    while True:
        try:
            values = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            raise RecordDecodeError(str(e), reader.line_num)
        except UnicodeDecodeError as e:
            raise RecordDecodeError(f"input is not valid {e.encoding} text ({e.reason})", reader.line_num)

        if not values:
            continue
        if len(values) != len(header):
            raise RecordDecodeError(
                f"found record with {len(values)} fields, but the header has {len(header)}",
                reader.line_num,
            )

        def optional(name: str) -> Optional[str]:
            if name not in positions:
                return None
            return values[positions[name]] or None

        yield Row(
            code=values[positions["code"]],
            label=values[positions["label"]],
            label_en=optional("label_en"),
            label_de=optional("label_de"),
        )


class RowWriter:
    """Write Rows to an open table, one flush per row."""

    def __init__(self, handle: TextIO, separator: str, write_header: bool = True):
        self.handle = handle
        self.writer = csv.writer(handle, delimiter=separator, lineterminator="\n")
        self.rows_written = 0
        if write_header:
            self.writer.writerow(OUTPUT_FIELDS)
            self.handle.flush()

    def write(self, row: Row) -> None:
        self.writer.writerow(row.to_cells())
        self.handle.flush()
        self.rows_written += 1
