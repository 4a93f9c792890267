"""CSV decoding and parsing for uploaded claims files."""

import csv
import io
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from claimflow.errors import CSVParsingError, EmptyFileError
from claimflow.models.claims import RawRow

logger = logging.getLogger(__name__)

DELIMITERS = (",", ";", "\t", "|")
DELIMITER_SAMPLE_LINES = 5
DELIMITER_SAMPLE_CHARS = 2048
ENCODING_SAMPLE_BYTES = 1024
PREVIEW_SAMPLE_BYTES = 50 * 1024


@dataclass
class CSVTable:
    """A parsed CSV file: trimmed headers and one dict per data row."""

    headers: list[str]
    rows: list[RawRow] = field(default_factory=list)
    delimiter: str = ","
    encoding: str = "utf-8"


@dataclass
class CSVPreview:
    """First rows of a file plus an estimate of its size in rows."""

    headers: list[str]
    rows: list[RawRow]
    delimiter: str
    total_rows: int


@dataclass
class CSVChunk:
    """A slice of consecutive data rows."""

    headers: list[str]
    rows: list[RawRow]
    start_index: int


def detect_encoding(data: bytes) -> str:
    """
    Guess the text encoding of raw file bytes.

    A byte-order mark decides outright. Otherwise the sample is tried as
    UTF-8 and falls back to Windows-1252 when it is not valid UTF-8.
    """
    if data.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if data.startswith(b"\xff\xfe") or data.startswith(b"\xfe\xff"):
        return "utf-16"

    sample = data[:ENCODING_SAMPLE_BYTES]
    if all(byte < 128 for byte in sample):
        return "utf-8"
    try:
        # A multibyte sequence may be cut at the sample boundary.
        sample.decode("utf-8", errors="strict")
    except UnicodeDecodeError as e:
        if e.start < len(sample) - 3:
            return "cp1252"
    return "utf-8"


def decode_content(data: bytes, encoding: str | None = None) -> tuple[str, str]:
    """Decode file bytes, returning the text and the encoding used."""
    encoding = encoding or detect_encoding(data)
    try:
        return data.decode(encoding), encoding
    except UnicodeDecodeError:
        logger.warning(f"Content is not valid {encoding}, decoding as cp1252")
        return data.decode("cp1252", errors="replace"), "cp1252"


def detect_delimiter(sample: str) -> str:
    """
    Pick the delimiter whose per-line count is highest and most stable.

    Consistency is ``mean / (1 + variance)`` of the counts over the first
    lines of the sample. Comma wins when nothing scores.
    """
    lines = sample.split("\n")[:DELIMITER_SAMPLE_LINES]
    best, best_consistency = ",", 0.0

    for delimiter in DELIMITERS:
        counts = [line.count(delimiter) for line in lines]
        if not counts:
            continue
        average = sum(counts) / len(counts)
        variance = sum((count - average) ** 2 for count in counts) / len(counts)
        consistency = average / (1 + variance) if average > 0 else 0.0
        if consistency > best_consistency:
            best, best_consistency = delimiter, consistency

    return best


def _records(text: str, delimiter: str) -> Iterator[list[str]]:
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    try:
        for record in reader:
            if not any(value.strip() for value in record):
                continue
            yield record
    except csv.Error as e:
        raise CSVParsingError(f"CSV parsing failed at line {reader.line_num}: {e}") from e


def _to_row(headers: list[str], record: list[str]) -> RawRow:
    """Pair values with headers; short records are padded with empty strings."""
    values = [value.strip() for value in record]
    return {header: values[i] if i < len(values) else "" for i, header in enumerate(headers)}


def _split_header(records: Iterator[list[str]]) -> list[str]:
    first = next(records, None)
    headers = [h.strip() for h in first] if first else []
    if not any(headers):
        raise EmptyFileError("CSV file has no header row")
    return headers


def read_csv(content: bytes, delimiter: str | None = None, encoding: str | None = None) -> CSVTable:
    """
    Parse a whole CSV file.

    Args:
        content: Raw file bytes
        delimiter: Field delimiter (detected when None)
        encoding: Text encoding (detected when None)

    Returns:
        CSVTable with every non-empty data row

    Raises:
        EmptyFileError: If the file has no header row
        CSVParsingError: If the CSV structure is broken
    """
    text, used_encoding = decode_content(content, encoding)
    delimiter = delimiter or detect_delimiter(text[:DELIMITER_SAMPLE_CHARS])

    records = _records(text, delimiter)
    headers = _split_header(records)
    rows = [_to_row(headers, record) for record in records]

    return CSVTable(headers=headers, rows=rows, delimiter=delimiter, encoding=used_encoding)


def read_preview(content: bytes, max_rows: int = 10) -> CSVPreview:
    """
    Parse the first ``max_rows`` data rows from the start of a file.

    The total row count is exact when the whole file fits in the sample.
    Otherwise it is estimated from the average record size in bytes over
    the sample.
    """
    raw_sample = content[:PREVIEW_SAMPLE_BYTES]
    # The sample may end inside a multibyte character.
    sample = raw_sample.decode(detect_encoding(content), errors="replace")
    delimiter = detect_delimiter(sample[:DELIMITER_SAMPLE_CHARS])

    records = _records(sample, delimiter)
    headers = _split_header(records)
    rows: list[RawRow] = []
    sampled = 0
    for record in records:
        sampled += 1
        if len(rows) < max_rows:
            rows.append(_to_row(headers, record))

    if len(content) <= PREVIEW_SAMPLE_BYTES:
        total_rows = sampled
    else:
        total_rows = len(content) * sampled // len(raw_sample)

    return CSVPreview(headers=headers, rows=rows, delimiter=delimiter, total_rows=total_rows)


def count_rows(content: bytes, delimiter: str | None = None) -> int:
    """Exact number of non-empty data rows."""
    text, _ = decode_content(content)
    delimiter = delimiter or detect_delimiter(text[:DELIMITER_SAMPLE_CHARS])
    records = _records(text, delimiter)
    _split_header(records)
    return sum(1 for _ in records)


def iter_csv_chunks(content: bytes, chunk_rows: int = 1000, delimiter: str | None = None) -> Iterator[CSVChunk]:
    """
    Yield the data rows of a file in chunks of at most ``chunk_rows``.

    Rows are parsed lazily; ``start_index`` is the 0-based index of the
    chunk's first row within the file.
    """
    if chunk_rows < 1:
        raise ValueError("chunk_rows must be positive")

    text, _ = decode_content(content)
    delimiter = delimiter or detect_delimiter(text[:DELIMITER_SAMPLE_CHARS])
    records = _records(text, delimiter)
    headers = _split_header(records)

    batch: list[RawRow] = []
    start = 0
    for record in records:
        batch.append(_to_row(headers, record))
        if len(batch) >= chunk_rows:
            yield CSVChunk(headers=headers, rows=batch, start_index=start)
            start += len(batch)
            batch = []
    if batch:
        yield CSVChunk(headers=headers, rows=batch, start_index=start)
