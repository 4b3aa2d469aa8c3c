from __future__ import annotations

from dataclasses import dataclass, field

from quizbank.schemas.models import RowError
from quizbank.utils.errors import CatastrophicParseFailure

QUOTE = '"'
SEPARATOR = ","
MAX_RECORD_SPAN = 50


@dataclass
class ParsedTable:
    headers: list[str]
    rows: list[list[str]]
    line_numbers: list[int] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


class _UnterminatedQuote(ValueError):
    pass


def _clean_field(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == QUOTE and value[-1] == QUOTE:
        value = value[1:-1].strip()
    return value


def _scan(text: str) -> tuple[list[str], bool]:
    """Split one logical line into fields; also report whether a quote is still open."""
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(text)
    while i < n:
        char = text[i]
        if char == QUOTE:
            if in_quotes and i + 1 < n and text[i + 1] == QUOTE:
                current.append(QUOTE)
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == SEPARATOR and not in_quotes:
            fields.append(_clean_field("".join(current)))
            current = []
        else:
            current.append(char)
        i += 1
    fields.append(_clean_field("".join(current)))
    return fields, in_quotes


def parse_line(line: str) -> list[str]:
    fields, open_quote = _scan(line)
    if open_quote:
        raise _UnterminatedQuote("Unterminated quoted field")
    return fields


def _advance(line: str, in_quotes: bool) -> tuple[bool, int]:
    """Carry quote state across one physical line and count the separators outside quotes."""
    separators = 0
    i = 0
    n = len(line)
    while i < n:
        char = line[i]
        if char == QUOTE:
            if in_quotes and i + 1 < n and line[i + 1] == QUOTE:
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == SEPARATOR and not in_quotes:
            separators += 1
        i += 1
    return in_quotes, separators


def _record_end(lines: list[str], start: int, width: int | None = None) -> tuple[int, bool]:
    """Find the last physical line of the record that begins at ``start``.

    A quoted field may continue onto later lines, but never past
    ``MAX_RECORD_SPAN`` lines or once the record already holds more fields
    than the header. When that happens the record is reported as
    unterminated at ``start`` alone.
    """
    in_quotes, separators = _advance(lines[start], False)
    end = start
    while in_quotes:
        if end + 1 >= len(lines) or end + 1 - start >= MAX_RECORD_SPAN:
            return start, False
        if width is not None and separators >= width:
            return start, False
        end += 1
        in_quotes, more = _advance(lines[end], True)
        separators += more
    return end, True


def _unterminated(line_no: int, body: str) -> RowError:
    return RowError(line=line_no, error="Unterminated quoted field", content=body.strip())


def parse(text: str) -> ParsedTable:
    """Turn raw CSV-like text into headers and rows.

    Only an empty or header-less input raises; bad lines are reported in
    ``errors`` and left out of ``rows``, and parsing resumes on the next
    physical line.
    """
    if text is None:
        raise CatastrophicParseFailure("Empty CSV content")
    content = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    if not content.strip():
        raise CatastrophicParseFailure("Empty CSV content")

    physical = content.split("\n")
    header_start = next(idx for idx, line in enumerate(physical) if line.strip())
    header_end, header_ok = _record_end(physical, header_start)
    if not header_ok:
        raise CatastrophicParseFailure(f"Header line {header_start + 1} has an unterminated quote")
    headers = parse_line("\n".join(physical[header_start:header_end + 1]))
    if not any(h for h in headers):
        raise CatastrophicParseFailure("Header line contains no column names")

    table = ParsedTable(headers=headers, rows=[])
    width = len(headers)
    i = header_end + 1
    while i < len(physical):
        if not physical[i].strip():
            i += 1
            continue
        line_no = i + 1
        end, terminated = _record_end(physical, i, width)
        if not terminated:
            table.errors.append(_unterminated(line_no, physical[i]))
            i += 1
            continue
        body = "\n".join(physical[i:end + 1])
        row = parse_line(body)
        while len(row) > width and row[-1] == "":
            row.pop()
        if len(row) > width:
            if end > i:
                # a stray quote pulled in later lines; drop only the line it started on
                table.errors.append(_unterminated(line_no, physical[i]))
                i += 1
                continue
            table.errors.append(
                RowError(
                    line=line_no,
                    error=f"Row has {len(row)} fields but the header has {width}",
                    content=body.strip(),
                )
            )
            i = end + 1
            continue
        row.extend([""] * (width - len(row)))
        table.rows.append(row)
        table.line_numbers.append(line_no)
        i = end + 1
    return table
