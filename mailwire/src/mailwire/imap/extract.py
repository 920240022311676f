"""Turn one raw FETCH block into a :class:`MessageRecord`.

What:
  Pull the common header fields and the body text out of the lines belonging
  to a single fetched message, discarding the protocol framing around them.

Why:
  The engine requests a narrow, fixed set of FETCH items, so line-prefix
  matching is enough to recover the fields. Keeping that logic behind
  :func:`extract_message` lets a stricter parser replace it later without
  touching callers.

How:
  Header lines are found by case-insensitive prefix, decoded through
  :func:`mailwire.utils.mime.decode_encoded_words`, and the ``Date`` value is
  parsed with :func:`email.utils.parsedate_to_datetime`. Trailing framing
  (blank lines, the command's tagged line, a lone ``)``) is trimmed from a copy
  before the body is taken from the lines after the ``BODY[TEXT]`` marker.

Interfaces:
  :class:`MessageRecord`, :class:`InvalidDate`, :class:`MalformedRecord`,
  :func:`extract_message`, :func:`trim_trailing_noise`.

Invariants & Safety:
  - Extraction never raises on message content. Missing fields are ``None``,
    an unparsable date becomes :class:`InvalidDate`, and every such recovery
    is recorded in :attr:`MessageRecord.problems`.
  - ``raw`` always holds the untrimmed block and is never parsed again.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Sequence, Union

from ..utils.mime import decode_encoded_words


HEADER_PREFIXES: Dict[str, str] = {
    "from_": "from:",
    "to": "to:",
    "subject": "subject:",
    "message_id": "message-id:",
    "content_type": "content-type:",
    "date": "date:",
}
"""Record attribute → lower-cased header prefix searched for in the block."""

BODY_MARKER = "BODY[TEXT]"

_FETCH_MARKER = re.compile(r"^\*\s+(\d+)\s+FETCH\b", re.IGNORECASE)


@dataclass(frozen=True)
class InvalidDate:
    """A ``Date`` header that could not be parsed; keeps the original text."""

    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class MalformedRecord:
    """Soft extraction problem attached to a record instead of being raised.

    Attributes:
      field: Record attribute affected (``"date"``, ``"body"``).
      reason: Human-readable description.
    """

    field: str
    reason: str


@dataclass
class MessageRecord:
    """Structured view of one fetched message.

    Attributes:
      from_: Decoded ``From`` value, ``None`` when absent.
      to: Decoded ``To`` value.
      subject: Decoded ``Subject`` value.
      message_id: ``Message-ID`` value.
      content_type: ``Content-Type`` value.
      date: Parsed ``Date``; :class:`InvalidDate` when unparsable, ``None`` when
        absent.
      body: Lines following the ``BODY[TEXT]`` marker, joined with ``\\n``.
      raw: Untrimmed block joined with ``\\n``, for diagnostics only.
      sequence: Message sequence number from the ``* n FETCH`` line.
      problems: Soft problems met while extracting.
    """

    from_: Optional[str] = None
    to: Optional[str] = None
    subject: Optional[str] = None
    message_id: Optional[str] = None
    content_type: Optional[str] = None
    date: Union[datetime, InvalidDate, None] = None
    body: str = ""
    raw: str = ""
    sequence: Optional[int] = None
    problems: List[MalformedRecord] = field(default_factory=list)

    @property
    def date_valid(self) -> bool:
        return isinstance(self.date, datetime)


def _header_value(lines: Sequence[str], prefix: str) -> Optional[str]:
    for line in lines:
        if line.lower().startswith(prefix):
            return decode_encoded_words(line[len(prefix):].strip())
    return None


def _parse_date(text: str) -> Union[datetime, InvalidDate]:
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return InvalidDate(text)


def trim_trailing_noise(lines: Sequence[str], tag: str) -> List[str]:
    """Return ``lines`` without trailing blanks, ``tag`` lines or lone ``)``."""

    if not tag:
        raise ValueError("tag must not be empty")
    trimmed = list(lines)
    while trimmed:
        last = trimmed[-1]
        if last == "" or last == ")" or last.startswith(tag):
            trimmed.pop()
            continue
        break
    return trimmed


def extract_message(block: Sequence[str], tag: str) -> MessageRecord:
    """Build a :class:`MessageRecord` from one segmented FETCH block.

    What:
      Reads header fields, the body and the sequence number from ``block``.

    Why:
      One malformed message must not abort a whole batch, so every recoverable
      issue ends up as a sentinel value plus a :class:`MalformedRecord` note.

    How:
      1. First case-insensitive prefix match per header, decoded.
      2. ``Date`` parsed, or wrapped in :class:`InvalidDate`.
      3. Trailing noise trimmed via :func:`trim_trailing_noise`.
      4. Body = lines strictly after the first line whose stripped text starts
         with ``BODY[TEXT]``; empty when there is no such line.

    Args:
      block: Lines of one message, marker line first.
      tag: Tag of the FETCH command, used to trim its completion line.
        Must not be empty.

    Returns:
      The extracted record.

    Raises:
      ValueError: If ``tag`` is empty.
    """

    record = MessageRecord(raw="\n".join(block))
    for attribute, prefix in HEADER_PREFIXES.items():
        if attribute == "date":
            continue
        setattr(record, attribute, _header_value(block, prefix))

    date_text = _header_value(block, HEADER_PREFIXES["date"])
    if date_text is not None:
        record.date = _parse_date(date_text)
        if isinstance(record.date, InvalidDate):
            record.problems.append(MalformedRecord("date", f"unparsable date {date_text!r}"))

    if block:
        marker = _FETCH_MARKER.match(block[0])
        if marker:
            record.sequence = int(marker.group(1))

    trimmed = trim_trailing_noise(block, tag)
    start = next(
        (index for index, line in enumerate(trimmed) if line.strip().startswith(BODY_MARKER)),
        None,
    )
    if start is None:
        record.problems.append(MalformedRecord("body", f"no {BODY_MARKER} marker"))
    else:
        record.body = "\n".join(trimmed[start + 1:])
    return record
