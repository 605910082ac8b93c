"""
Tabular Ingestion

Parses delimited text into row dictionaries and infers one semantic type per
column from a bounded sample of rows.

Type inference
--------------
Each non-empty sampled value is classified, in order, as:

1. ``boolean`` - exactly ``true`` / ``false`` (any case)
2. ``number``  - accepted by ``pandas.to_numeric``
3. ``date``    - accepted by ``pandas.to_datetime(format="mixed")``
4. ``string``

The first classified value sets the column's kind. Any later value with a
different classification forces ``string``. Number is tested before date, so
``"2024"`` is a number and a column mixing ``"2024"`` with ``"2024-01-05"``
degrades to ``string``. A column with no non-empty sampled value is
``null``.

The parser performs no size enforcement. Callers check payload size with
`ensure_within_limit` before handing bytes over.
"""

from __future__ import annotations

import csv
import io
import logging
import warnings
from typing import Dict, List, Literal, Optional, Sequence, Union

import pandas as pd
from pydantic import BaseModel, Field

from ..config import settings

logger = logging.getLogger("sqs.ingest")


InferredType = Literal["number", "boolean", "date", "string", "null"]

_BOOLEAN_PATTERN = r"^(true|false)$"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class CsvIngestError(ValueError):
    """Raised when a tabular payload cannot be ingested."""


class PayloadTooLargeError(CsvIngestError):
    """Raised when a payload exceeds the configured byte cap."""


def ensure_within_limit(size: int, max_bytes: Optional[int] = None) -> None:
    limit = max_bytes if max_bytes is not None else settings.max_csv_bytes
    if size > limit:
        raise PayloadTooLargeError(
            f"Payload is {size} bytes; the maximum allowed is {limit} bytes."
        )


# ---------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------

class ParsedTable(BaseModel):
    rows: List[Dict[str, Optional[str]]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    types: Dict[str, InferredType] = Field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return len(self.rows)


# ---------------------------------------------------------------------
# Ingestor
# ---------------------------------------------------------------------

class TabularIngestor:
    """
    CSV parser with per-column type inference.
    """

    def __init__(
        self,
        sample_size: Optional[int] = None,
        delimiter: str = ",",
    ) -> None:
        self.sample_size = sample_size if sample_size is not None else settings.csv_sample_size
        self.delimiter = delimiter

    def parse(self, data: Union[bytes, str], has_header: bool = True) -> ParsedTable:
        """
        Parse a delimited payload.

        Parameters
        ----------
        data : bytes | str
            Raw payload. Bytes are decoded as UTF-8 and a leading byte-order
            mark is dropped.

        has_header : bool
            When True the first row names the columns (duplicate names are
            kept, the last one wins inside each row). When False the columns
            are ``col_1 .. col_N`` sized to the widest row.

        Returns
        -------
        ParsedTable

        Raises
        ------
        CsvIngestError
            If the bytes are not valid UTF-8.
        """
        text = self._decode(data)
        records = self.split_rows(text)

        if not records:
            return ParsedTable()

        if has_header:
            columns = records[0]
            body = records[1:]
        else:
            width = max(len(r) for r in records)
            columns = [f"col_{i + 1}" for i in range(width)]
            body = records

        rows: List[Dict[str, Optional[str]]] = []
        for record in body:
            row: Dict[str, Optional[str]] = {}
            for i, name in enumerate(columns):
                row[name] = record[i] if i < len(record) else None
            rows.append(row)

        types = self.infer_types(rows, columns)

        logger.debug("Parsed %d rows x %d columns", len(rows), len(columns))
        return ParsedTable(rows=rows, columns=columns, types=types)

    @staticmethod
    def _decode(data: Union[bytes, str]) -> str:
        if isinstance(data, (bytes, bytearray)):
            try:
                return bytes(data).decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise CsvIngestError(
                    f"Payload is not valid UTF-8 (byte {exc.start})."
                ) from exc
        return data[1:] if data.startswith("\ufeff") else data

    def split_rows(self, text: str) -> List[List[str]]:
        """
        Quote-aware row splitting with trimmed cells.

        A quoted field may hold the delimiter or line breaks, and a doubled
        quote inside it is a literal quote. Rows that are blank after
        trimming are discarded.
        """
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self.delimiter)
        try:
            records = [[cell.strip() for cell in record] for record in reader]
        except csv.Error as exc:
            raise CsvIngestError(f"Malformed delimited text: {exc}") from exc

        return [r for r in records if any(cell != "" for cell in r)]

    def infer_types(
        self,
        rows: Sequence[Dict[str, Optional[str]]],
        columns: Sequence[str],
    ) -> Dict[str, InferredType]:
        sample = rows[: self.sample_size]
        types: Dict[str, InferredType] = {}

        for name in dict.fromkeys(columns):
            values = [r.get(name) for r in sample]
            types[name] = infer_column_type(values)

        return types


def _classify(values: List[str]) -> List[InferredType]:
    series = pd.Series(values, dtype="object")

    is_bool = series.str.match(_BOOLEAN_PATTERN, case=False, na=False)
    numeric = pd.to_numeric(series, errors="coerce")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        dates = pd.to_datetime(series, errors="coerce", format="mixed", utc=True)

    kinds: List[InferredType] = []
    for i in range(len(values)):
        if is_bool.iat[i]:
            kinds.append("boolean")
        elif pd.notna(numeric.iat[i]):
            kinds.append("number")
        elif pd.notna(dates.iat[i]):
            kinds.append("date")
        else:
            kinds.append("string")
    return kinds


def infer_column_type(values: Sequence[Optional[str]]) -> InferredType:
    """
    Infer the type of one column from its sampled values.
    """
    present = [str(v).strip() for v in values if v is not None and str(v).strip() != ""]
    if not present:
        return "null"

    held: Optional[InferredType] = None
    for kind in _classify(present):
        if kind == "string":
            return "string"
        if held is None:
            held = kind
        elif kind != held:
            return "string"

    return held or "null"
