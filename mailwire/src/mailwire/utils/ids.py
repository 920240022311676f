"""Generate command tags for the tag-correlated protocol.

What:
  Provide :class:`TagSequence`, a per-connection counter producing tags such
  as ``A1``, ``A2`` ...

Why:
  Completion detection keys on ``<tag> OK``. Tags must be unique within a
  connection and configurable per engine so independent sessions never confuse
  each other's completion lines.

How:
  Combine an alphanumeric prefix with a monotonically increasing integer.

Interfaces:
  :class:`TagSequence`.
"""
from __future__ import annotations

import itertools


class TagSequence:
    """Issue ``<prefix><n>`` tags starting at ``start``."""

    def __init__(self, prefix: str = "A", start: int = 1) -> None:
        if not prefix or not prefix.isalnum():
            raise ValueError("tag prefix must be a non-empty alphanumeric string")
        self.prefix = prefix
        self._counter = itertools.count(start)

    def next(self) -> str:
        return f"{self.prefix}{next(self._counter)}"

    __next__ = next

    def __iter__(self) -> "TagSequence":
        return self
