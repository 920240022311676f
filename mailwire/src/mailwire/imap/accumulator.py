"""Collect a command's reply until its tagged completion line arrives.

What:
  Read chunks from a :class:`~mailwire.imap.transport.Transport`, decode them,
  split them into CRLF-terminated lines and stop as soon as ``<tag> OK`` is
  present.

Why:
  A single ``receive`` rarely carries a whole FETCH reply; large messages
  stream in over many reads. Stopping on the completion line, and only then,
  gives the segmenter a complete buffer without over-reading into the next
  command's data.

How:
  An explicit loop decodes with an incremental decoder, carries a partial
  trailing line into the next chunk, and checks the completion predicate after
  every chunk. End of stream, an exhausted ``max_reads`` budget, or a passed
  ``deadline`` raise :class:`~mailwire.imap.errors.IncompleteResponse`. Tagged
  ``NO``/``BAD`` replies raise :class:`~mailwire.imap.errors.CommandRejected`.

Interfaces:
  :class:`ResponseBuffer`, :class:`ResponseAccumulator`, :func:`is_completion`.

Invariants & Safety:
  - No read is issued once the completion line is in the buffer.
  - Each buffer belongs to exactly one tag and one command cycle.
  - Transport errors propagate untouched.
"""
from __future__ import annotations

import codecs
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .errors import CommandRejected, IncompleteResponse
from .transport import Transport


CRLF = "\r\n"

_GREETING_PREFIXES = ("* OK", "* PREAUTH", "* BYE")


def is_completion(line: str, tag: str) -> bool:
    """Return ``True`` when ``line`` is the successful completion for ``tag``."""

    return line.startswith(f"{tag} OK")


def _rejection(line: str, tag: str) -> Optional[Tuple[str, str]]:
    for status in ("NO", "BAD"):
        prefix = f"{tag} {status}"
        if line == prefix or line.startswith(prefix + " "):
            return status, line[len(prefix):].strip()
    return None


@dataclass
class ResponseBuffer:
    """Lines gathered for one tagged command.

    Attributes:
      tag: Tag the buffer was collected for (``"*"`` for the greeting).
      lines: Received lines in arrival order, CRLF stripped.
      reads: Number of ``receive`` calls it took.
    """

    tag: str
    lines: List[str] = field(default_factory=list)
    reads: int = 0

    @property
    def complete(self) -> bool:
        return any(is_completion(line, self.tag) for line in self.lines)

    @property
    def completion(self) -> Optional[str]:
        """Return the completion line, if present."""

        for line in self.lines:
            if is_completion(line, self.tag):
                return line
        return None


class ResponseAccumulator:
    """Grow a :class:`ResponseBuffer` until its completion line appears.

    What:
      Wraps a transport with the read-until-complete loop used by every command.

    Why:
      The loop is the only place the engine blocks; concentrating the guards
      (``max_reads``, ``deadline``) here keeps a silent or truncated server from
      hanging callers forever.

    How:
      See :meth:`collect`. The incremental decoder and the text following a
      completion line persist on the instance, so bytes read past one reply
      open the next one instead of being lost.

    Args:
      transport: Stream to read from.
      encoding: Text encoding for protocol lines.
      max_reads: Maximum ``receive`` calls per command, ``None`` for unbounded.
      deadline: Seconds allowed per command, ``None`` for unbounded.
      clock: Monotonic clock used for the deadline (injectable for tests).
    """

    def __init__(
        self,
        transport: Transport,
        *,
        encoding: str = "utf-8",
        max_reads: Optional[int] = None,
        deadline: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._encoding = encoding
        self._max_reads = max_reads
        self._deadline = deadline
        self._clock = clock
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._carry = ""

    def collect(self, tag: str) -> ResponseBuffer:
        """Read until a line starting with ``<tag> OK`` is buffered.

        What:
          Accumulates every line of the reply to the command tagged ``tag``.

        Why:
          Replies may arrive in arbitrarily many fragments, with the completion
          line sharing a chunk with data or arriving alone.

        How:
          Delegates to :meth:`_collect` with a predicate that also watches for
          tagged ``NO``/``BAD`` lines.

        Args:
          tag: Command tag to wait for.

        Returns:
          The complete :class:`ResponseBuffer`.

        Raises:
          IncompleteResponse: Stream ended or a guard ran out first.
          CommandRejected: The server answered ``<tag> NO`` or ``<tag> BAD``.
          TransportError: Propagated from the transport.
        """

        def done(line: str, buffer: ResponseBuffer) -> bool:
            if is_completion(line, tag):
                return True
            rejected = _rejection(line, tag)
            if rejected is not None:
                status, text = rejected
                raise CommandRejected(tag, status, text, buffer.lines)
            return False

        return self._collect(ResponseBuffer(tag=tag), done)

    def collect_greeting(self) -> ResponseBuffer:
        """Read the untagged server greeting.

        Raises:
          CommandRejected: The server greeted with ``* BYE``.
          IncompleteResponse: The stream closed before any greeting.
        """

        def done(line: str, buffer: ResponseBuffer) -> bool:
            if line.startswith("* BYE"):
                raise CommandRejected(None, "BYE", line[len("* BYE"):].strip(), buffer.lines)
            return line.startswith(_GREETING_PREFIXES)

        return self._collect(ResponseBuffer(tag="*"), done)

    def _collect(
        self,
        buffer: ResponseBuffer,
        done: Callable[[str, ResponseBuffer], bool],
    ) -> ResponseBuffer:
        text, self._carry = self._carry, ""
        started = self._clock()
        while True:
            *lines, text = text.split(CRLF)
            for index, line in enumerate(lines):
                buffer.lines.append(line)
                try:
                    finished = done(line, buffer)
                except CommandRejected:
                    self._carry = CRLF.join(lines[index + 1:] + [text])
                    raise
                if finished:
                    # Anything after the completion line belongs to the next reply.
                    self._carry = CRLF.join(lines[index + 1:] + [text])
                    return buffer

            if self._max_reads is not None and buffer.reads >= self._max_reads:
                raise IncompleteResponse(buffer.tag, buffer.lines, buffer.reads, "read limit reached")
            if self._deadline is not None and self._clock() - started > self._deadline:
                raise IncompleteResponse(buffer.tag, buffer.lines, buffer.reads, "deadline passed")

            chunk = self._transport.receive()
            buffer.reads += 1
            if not chunk:
                text += self._decoder.decode(b"", final=True)
                self._decoder.reset()
                if text:
                    buffer.lines.append(text)
                    if done(text, buffer):
                        return buffer
                raise IncompleteResponse(buffer.tag, buffer.lines, buffer.reads, "stream closed")
            text += self._decoder.decode(chunk)
