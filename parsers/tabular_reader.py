"""
Tabular reader for catalog uploads.

Decodes a spreadsheet archive (first sheet only) or a comma-separated file
into a RawGrid of cell strings. The whole file is read up front; nothing
downstream holds a cursor into the source.
"""

import csv
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO, StringIO
from pathlib import PurePath
from typing import Iterator, Optional, Sequence
import structlog

import pandas as pd

from config.settings import settings
from exceptions import EmptyFileError, FileDecodeError, UnsupportedFormatError

logger = structlog.get_logger(__name__)

SPREADSHEET_FORMATS = ("xlsx", "xlsm")
DELIMITED_FORMATS = ("csv",)


@dataclass(frozen=True)
class RawGrid:
    """
    Rectangular grid of raw cell strings.

    rows[0] is the header row. Row numbers handed out by data_rows() are
    1-based spreadsheet rows, so the first data row is row 2.
    """
    rows: tuple[tuple[str, ...], ...]
    file_format: str
    sheet_name: Optional[str] = None

    @property
    def header(self) -> list[str]:
        """Header cells, lower-cased and trimmed."""
        if not self.rows:
            return []
        return [cell.strip().lower() for cell in self.rows[0]]

    @property
    def data_row_count(self) -> int:
        return max(len(self.rows) - 1, 0)

    @property
    def is_spreadsheet(self) -> bool:
        return self.file_format in SPREADSHEET_FORMATS

    def data_rows(self) -> Iterator[tuple[int, tuple[str, ...]]]:
        """Yield (row_number, cells) for every row after the header."""
        for offset, row in enumerate(self.rows[1:]):
            yield offset + 2, row

    @staticmethod
    def cell(row: Sequence[str], index: Optional[int]) -> str:
        """Trimmed cell value, or "" if the column is absent or out of range."""
        if index is None or index < 0 or index >= len(row):
            return ""
        return row[index].strip()


def is_empty_row(cells: Sequence[str]) -> bool:
    """True if every cell is blank after trimming."""
    return all(not (cell or "").strip() for cell in cells)


def detect_format(filename: str) -> str:
    """
    Infer the declared format from the file extension.

    Raises:
        UnsupportedFormatError: If the extension is not supported
    """
    file_format = PurePath(filename or "").suffix.lower().lstrip(".")
    if file_format not in settings.supported_formats:
        raise UnsupportedFormatError(file_format, list(settings.supported_formats))
    return file_format


def derive_category(filename: str) -> str:
    """
    Category for every row of an import, taken from the file's base name.

    "Brake Parts.xlsx" -> "Brake Parts"
    """
    stem = PurePath(filename or "").stem.strip()
    return stem or settings.default_category


def read_grid(content: bytes, filename: str) -> RawGrid:
    """
    Decode file bytes into a RawGrid.

    Args:
        content: Raw file bytes
        filename: Original file name (used for format detection)

    Returns:
        RawGrid with the header in rows[0]

    Raises:
        UnsupportedFormatError: Extension is not xlsx/xlsm/csv
        FileDecodeError: Bytes are not a readable file of that format
        EmptyFileError: Decoded grid has zero rows
    """
    file_format = detect_format(filename)
    logger.info("reading_tabular_file", file_name=filename, file_format=file_format, size=len(content))

    if file_format in SPREADSHEET_FORMATS:
        df, sheet_name = _read_spreadsheet(content)
    else:
        df, sheet_name = _read_delimited(content), None

    rows = tuple(
        tuple(_cell_to_str(value) for value in record)
        for record in df.itertuples(index=False, name=None)
    )

    if not rows:
        logger.warning("tabular_file_empty", file_name=filename)
        raise EmptyFileError(filename)

    logger.info(
        "tabular_file_read",
        file_name=filename,
        rows=len(rows),
        columns=len(rows[0]),
        sheet=sheet_name
    )

    return RawGrid(rows=rows, file_format=file_format, sheet_name=sheet_name)


def _read_spreadsheet(content: bytes) -> tuple[pd.DataFrame, str]:
    """Read the first worksheet of a ZIP-based spreadsheet."""
    try:
        excel = pd.ExcelFile(BytesIO(content), engine="openpyxl")
    except Exception as e:
        logger.error("spreadsheet_read_failed", error=str(e))
        raise FileDecodeError(
            message="Failed to read spreadsheet file",
            details={"original_error": str(e)}
        )

    if not excel.sheet_names:
        raise EmptyFileError()

    sheet_name = excel.sheet_names[0]
    if len(excel.sheet_names) > 1:
        # Only the first sheet is imported
        logger.info(
            "extra_sheets_ignored",
            used=sheet_name,
            ignored=excel.sheet_names[1:]
        )

    try:
        df = excel.parse(sheet_name, header=None, dtype=object)
    except Exception as e:
        logger.error("sheet_parse_failed", sheet=sheet_name, error=str(e))
        raise FileDecodeError(
            message=f"Failed to read sheet: {sheet_name}",
            details={"original_error": str(e)}
        )

    return df, sheet_name


def _field_width(text: str) -> int:
    """Widest line in the file, counted the way the csv module splits it."""
    return max((len(fields) for fields in csv.reader(StringIO(text))), default=0)


def _read_delimited(content: bytes) -> pd.DataFrame:
    """
    Read comma-separated text with every cell kept as a string.

    Lines may have more or fewer fields than the header. The grid is as
    wide as the widest line and short lines are padded with blanks.
    """
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError:
            logger.debug("csv_encoding_retry", failed_encoding=encoding)
            continue

        try:
            width = _field_width(text)
            if width == 0:
                return pd.DataFrame()
            return pd.read_csv(
                StringIO(text),
                header=None,
                names=range(width),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as e:
            logger.error("csv_read_failed", error=str(e))
            raise FileDecodeError(
                message="Failed to read delimited file",
                details={"original_error": str(e)}
            )

    raise FileDecodeError(message="Delimited file has an unknown text encoding")


def _cell_to_str(value) -> str:
    """
    Render a decoded cell as text.

    NaN/None -> "", 100.0 -> "100", dates -> ISO format.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if pd.isna(value):
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
