"""mailwire logging helpers with JSON emission and redaction safeguards.

What:
  Offer a tiny facade over Python streams so the engine can emit JSON log
  lines with consistent fields and automatic removal of message content and
  credentials.

Why:
  Protocol traces are the first thing anyone reads when a server misbehaves. A
  structured layout keeps them greppable, and the redaction step keeps
  subjects, bodies, raw FETCH blocks and passwords out of shared log stores.

How:
  :class:`JsonLogger` is a dataclass holding a stream, a component name, a
  minimum level and bound context (connection host, for instance). Context and
  per-call fields pass through :func:`redact` before ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`redact`, :func:`get_logger`.

Invariants & Safety:
  - Every entry carries an ISO8601 timestamp, severity, and component name.
  - Sensitive keys (``subject``, ``body``, ``raw``, ``password``) are replaced
    with ``[redacted]`` inside nested mappings and lists too.
  - Streams are flushed after every write.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


REDACTED = "[redacted]"
LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}
SENSITIVE_KEYS = frozenset({"subject", "body", "raw", "password"})


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Emits single-line JSON entries with timestamp, severity, component and
      optional extra fields.

    Why:
      A single implementation guarantees a uniform schema for log scraping and
      test assertions, and a single redaction point.

    How:
      :meth:`log` drops entries below ``threshold``, merges bound ``context``
      with the call's fields, redacts them and writes one line with :mod:`json`.
      :meth:`bind` derives a logger that shares the stream.
    """

    stream: Any = field(default_factory=lambda: sys.stderr)
    component: str = "mailwire"
    threshold: str = "DEBUG"
    context: Dict[str, Any] = field(default_factory=dict)

    def bind(self, **context: Any) -> "JsonLogger":
        """Return a logger writing to the same stream with ``context`` added to every entry."""

        return replace(self, context={**self.context, **context})

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        Args:
          level: Severity (e.g., ``"info"`` or ``"error"``), upper-cased on output.
          message: Event name or short description.
          extra: Optional context dictionary, redacted recursively.
        """

        if LEVELS.get(level.upper(), 0) < LEVELS.get(self.threshold.upper(), 0):
            return
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        fields = {**self.context, **(extra or {})}
        if fields:
            payload.update(redact(fields))
        json.dump(payload, self.stream, separators=(",", ":"), default=str)
        self.stream.write("\n")
        self.stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, extra=kwargs)


def redact(value: Any) -> Any:
    """Return ``value`` with :data:`SENSITIVE_KEYS` masked inside mappings and sequences."""

    if isinstance(value, Mapping):
        return {key: REDACTED if key in SENSITIVE_KEYS else redact(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


def get_logger(component: str, stream: Any = None, threshold: str = "DEBUG") -> JsonLogger:
    """Construct a :class:`JsonLogger` for ``component``.

    Writes to ``stderr`` unless ``stream`` is given, so command output on
    ``stdout`` stays machine-readable.
    """

    if stream is None:
        return JsonLogger(component=component, threshold=threshold)
    return JsonLogger(stream=stream, component=component, threshold=threshold)
