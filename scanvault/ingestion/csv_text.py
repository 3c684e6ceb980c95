"""
Delimited-text decoding for raw scan exports.

Exports are produced by several community tools and spreadsheet programs, so
the decoder is deliberately forgiving:

  - A leading BOM is stripped; CRLF / CR line endings become LF.
  - The delimiter is detected from the header line: whichever of
    ``, ; TAB |`` occurs most often wins (comma on ties or when none occur).
  - Each line is split by the stdlib ``csv`` reader with double-quote
    escaping (``""`` inside quotes is a literal quote). Quoted fields do not
    span lines.
  - Blank lines and lines whose cells are all empty are dropped.
  - Empty header cells become ``col{index}``; missing trailing cells become
    ``""``; every cell is whitespace-stripped.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")


@dataclass
class DecodedCsv:
    """Header list plus one ``header → cell`` dict per data line."""

    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)
    delimiter: str = ","


def detect_delimiter(header_line: str) -> str:
    """Return the candidate delimiter with the highest count in ``header_line``."""
    best, best_count = ",", -1
    for candidate in CANDIDATE_DELIMITERS:
        count = header_line.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def split_line(line: str, delimiter: str) -> list[str]:
    """Split one line on ``delimiter``, honouring double-quote escaping."""
    return next(csv.reader([line], delimiter=delimiter, quotechar='"'), [])


def decode_csv_text(text: str) -> DecodedCsv:
    """Decode raw export text into headers and row dicts.

    Args:
        text: Full file contents.

    Returns:
        :class:`DecodedCsv`; empty headers/rows for empty input.
    """
    normalized = text.removeprefix("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    lines = normalized.split("\n")
    if not lines or not lines[0]:
        return DecodedCsv()

    delimiter = detect_delimiter(lines[0])
    header_cells = [cell.strip() for cell in split_line(lines[0], delimiter)]
    headers = [cell if cell else f"col{i}" for i, cell in enumerate(header_cells)]

    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        if not line:
            continue
        cells = split_line(line, delimiter)
        if all(not cell.strip() for cell in cells):
            continue
        rows.append({
            header: cells[i].strip() if i < len(cells) else ""
            for i, header in enumerate(headers)
        })

    logger.debug(
        "Decoded CSV | delimiter=%r | headers=%d | rows=%d",
        delimiter, len(headers), len(rows),
    )
    return DecodedCsv(headers=headers, rows=rows, delimiter=delimiter)
