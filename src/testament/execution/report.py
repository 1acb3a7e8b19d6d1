"""TRX result report parsing.

The report is streamed with an incremental pull parser so large runs never
build a full tree. Element matching uses local names only; the TRX
namespace URI is ignored.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from testament.core.errors import ReportError
from testament.models import Outcome, OutcomeRecord

_OUTCOMES = {
    "Passed": Outcome.PASSED,
    "Failed": Outcome.FAILED,
}

_CHUNK_SIZE = 64 * 1024


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _ascii_int(text: str) -> int:
    """Unsigned decimal value, or 0 when ``text`` is not one."""
    if text.isascii() and text.isdigit():
        return int(text)
    return 0


def parse_duration_ms(text: str | None) -> int:
    """Convert ``HH:MM:SS[.fffffff]`` to milliseconds.

    Only the first three fraction digits count; they are never rounded.
    Anything that is not three colon-separated parts is 0, and a part that
    is not a number counts as 0.
    """
    if not text:
        return 0
    parts = text.strip().split(":")
    if len(parts) != 3:
        return 0

    hours, minutes = _ascii_int(parts[0]), _ascii_int(parts[1])
    whole, _, fraction = parts[2].partition(".")
    seconds = _ascii_int(whole)

    millis = 0
    for ch in fraction[:3].ljust(3, "0"):
        millis = millis * 10 + (int(ch) if ch.isascii() and ch.isdigit() else 0)

    return (hours * 3600 + minutes * 60 + seconds) * 1000 + millis


def parse_outcome(text: str | None) -> Outcome:
    """``Passed`` and ``Failed`` map directly; anything else is skipped."""
    if text is None:
        return Outcome.SKIPPED
    return _OUTCOMES.get(text, Outcome.SKIPPED)


def _failure_text(result: ET.Element) -> str | None:
    message = ""
    stack_trace = ""
    for child in result.iter():
        if _local(child.tag) != "ErrorInfo":
            continue
        for part in child:
            name = _local(part.tag)
            if name == "Message":
                message += "".join(part.itertext())
            elif name == "StackTrace":
                stack_trace += "".join(part.itertext())

    pieces = [p for p in (message.strip(), stack_trace.strip()) if p]
    if not pieces:
        return None
    return "\n\n".join(pieces)


def _record(result: ET.Element) -> OutcomeRecord | None:
    name = result.get("testName")
    if not name:
        return None
    return OutcomeRecord(
        test_name=name,
        outcome=parse_outcome(result.get("outcome")),
        duration_ms=parse_duration_ms(result.get("duration")),
        error_message=_failure_text(result),
    )


def parse_report(xml_text: str) -> list[OutcomeRecord]:
    """Extract one record per named ``UnitTestResult``, in document order.

    Raises:
        ReportError: The document is not well-formed XML.
    """
    if not xml_text.strip():
        return []

    parser = ET.XMLPullParser(events=("end",))
    records: list[OutcomeRecord] = []

    def drain() -> None:
        for _, elem in parser.read_events():
            if _local(elem.tag) != "UnitTestResult":
                continue
            record = _record(elem)
            if record is not None:
                records.append(record)
            elem.clear()

    try:
        for start in range(0, len(xml_text), _CHUNK_SIZE):
            parser.feed(xml_text[start : start + _CHUNK_SIZE])
            drain()
        parser.close()
        drain()
    except ET.ParseError as e:
        raise ReportError.malformed(str(e)) from e

    return records


def read_report(path: Path, exit_code: int | None = None) -> list[OutcomeRecord]:
    """Read and parse a report file.

    Raises:
        ReportError: The file is missing, unreadable or malformed.
    """
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        raise ReportError.unreadable(str(path), str(e), exit_code) from e
    return parse_report(text)
