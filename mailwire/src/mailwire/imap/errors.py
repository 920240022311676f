"""Error taxonomy for the mailwire response engine.

What:
  Define the exceptions raised by the transport, the completion accumulator,
  the search compiler and the connection-state checks.

Why:
  Callers must tell fatal per-command failures (a dropped stream, a rejected
  command) apart from caller mistakes (empty criteria) without parsing
  messages. Per-record extraction problems are not exceptions at all; they
  travel as :class:`~mailwire.imap.extract.MalformedRecord` notes.

How:
  Everything derives from :class:`ImapError`. Input validation errors also
  derive from :class:`ValueError` so generic callers can catch them.

Interfaces:
  :class:`ImapError`, :class:`TransportError`, :class:`IncompleteResponse`,
  :class:`CommandRejected`, :class:`EmptyCriteria`, :class:`InvalidCriterion`,
  :class:`ConnectionStateError`, :class:`NotConnected`,
  :class:`FolderNotSelected`.
"""
from __future__ import annotations

from typing import List, Optional, Sequence


class ImapError(Exception):
    """Base class for every error raised by mailwire's IMAP layer."""


class TransportError(ImapError):
    """The byte stream failed while sending or receiving.

    Raised by transports and propagated untouched by the engine; reads are
    never retried.
    """


class IncompleteResponse(ImapError):
    """The reply ended before its tagged completion line arrived.

    What:
      Signals that the stream closed, or a read/deadline guard ran out, while
      the accumulator was still waiting for ``<tag> OK``.

    Why:
      A half-read reply cannot be trusted; the caller decides whether to
      reconnect. The partial lines are kept for diagnostics.

    Attributes:
      tag: Tag the accumulator was waiting for.
      lines: Lines gathered before the failure.
      reads: Number of ``receive`` calls performed.
    """

    def __init__(self, tag: str, lines: Sequence[str], reads: int, reason: str) -> None:
        super().__init__(f"{tag}: {reason} after {reads} read(s), {len(lines)} line(s)")
        self.tag = tag
        self.lines: List[str] = list(lines)
        self.reads = reads
        self.reason = reason


class CommandRejected(ImapError):
    """The server answered a command with ``NO``/``BAD`` or greeted with ``BYE``."""

    def __init__(self, tag: Optional[str], status: str, text: str, lines: Sequence[str] = ()) -> None:
        label = tag if tag is not None else "*"
        super().__init__(f"{label} {status} {text}".rstrip())
        self.tag = tag
        self.status = status
        self.text = text
        self.lines: List[str] = list(lines)


class EmptyCriteria(ImapError, ValueError):
    """A search was requested without any criteria."""


class InvalidCriterion(ImapError, ValueError):
    """A search criterion carries a value type the compiler cannot express."""


class ConnectionStateError(ImapError):
    """An operation was issued in the wrong connection stage."""


class NotConnected(ConnectionStateError):
    """No authenticated connection is open."""


class FolderNotSelected(ConnectionStateError):
    """The operation needs a selected folder; call ``select`` first."""
