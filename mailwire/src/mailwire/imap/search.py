"""Translate criteria mappings into IMAP SEARCH command text.

What:
  Provide a deterministic mapping from criteria dictionaries (``{"seen":
  False, "largerThan": 1024}``) to the tokens of a ``SEARCH`` command line.

Why:
  IMAP search syntax is positional and picky about keyword spelling, negated
  flags and date formats. Centralising the translation keeps every caller's
  queries consistent and makes the tricky cases unit-testable without a
  server.

How:
  Iterates the mapping in insertion order and converts each entry according to
  its value type. ``all: True`` short-circuits to ``ALL``. Empty mappings are
  rejected before anything is compiled.

Interfaces:
  :class:`HeaderCriterion`, :class:`CompiledSearchCommand`,
  :func:`compile_criteria`.

Invariants & Safety:
  - Output depends only on the input mapping and its order.
  - String values are emitted verbatim; quoting them is the caller's job.
  - Dates always use English month abbreviations, whatever the locale.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from numbers import Number
from typing import List, Mapping, Tuple

from .errors import EmptyCriteria, InvalidCriterion


FLAG_CRITERIA = frozenset({"answered", "deleted", "draft", "flagged", "seen"})
"""Criteria whose ``False`` value compiles to the negated ``UN<NAME>`` keyword."""

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class HeaderCriterion:
    """``HEADER <key> "<value>"`` search term."""

    key: str
    value: str


@dataclass(frozen=True)
class CompiledSearchCommand:
    """Verb plus ordered criteria tokens for one search command."""

    verb: str
    tokens: Tuple[str, ...]

    @property
    def criteria_text(self) -> str:
        return " ".join(self.tokens).strip()

    @property
    def text(self) -> str:
        return f"{self.verb} {self.criteria_text}".strip()

    def __str__(self) -> str:
        return self.text


def format_date(value: date) -> str:
    """Render ``value`` as ``d-Mon-yyyy`` (``7-Mar-2024``)."""

    return f"{value.day}-{MONTHS[value.month - 1]}-{value.year}"


def _header_tokens(header: object) -> List[str]:
    if isinstance(header, HeaderCriterion):
        pairs = [(header.key, header.value)]
    elif isinstance(header, Mapping):
        pairs = list(header.items())
    else:
        raise InvalidCriterion(f"Unsupported header criterion: {header!r}")
    return [f'HEADER {key.upper()} "{value}"' for key, value in pairs]


def _compile_entry(name: str, value: object) -> List[str]:
    keyword = name.upper()
    if isinstance(value, bool):
        if value:
            return [keyword]
        if name.lower() in FLAG_CRITERIA:
            return [f"UN{keyword}"]
        return []
    if isinstance(value, str):
        return [f"{keyword} {value}"]
    if isinstance(value, Number):
        if name.endswith("Than"):
            keyword = name[: -len("Than")].upper()
        return [f"{keyword} {value}"]
    if isinstance(value, date):
        return [f"{keyword} {format_date(value)}"]
    if isinstance(value, (HeaderCriterion, Mapping)):
        return _header_tokens(value)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        # Values are joined without a separator.
        return [f"{keyword} {''.join(value)}"]
    raise InvalidCriterion(f"Unsupported value for criterion {name!r}: {value!r}")


def compile_criteria(criteria: Mapping[str, object], *, verb: str = "SEARCH") -> CompiledSearchCommand:
    """Convert a criteria mapping into a :class:`CompiledSearchCommand`.

    What:
      Inspects every entry of ``criteria`` and builds the ordered token list of
      a search command.

    Why:
      Boolean flags, numeric size limits, dates and header matches all use
      different syntax; this helper owns those rules so callers only describe
      what they want.

    How:
      Rejects empty input, honours ``all: True`` as an override, skips
      ``None`` values and converts the rest with :func:`_compile_entry`.

    Args:
      criteria: Criterion name to value, in the order tokens should appear.
      verb: Command verb placed before the tokens (``"UID SEARCH"`` for UIDs).

    Returns:
      The compiled command.

    Raises:
      EmptyCriteria: ``criteria`` is empty.
      InvalidCriterion: A value has an unsupported type.
    """

    if not criteria:
        raise EmptyCriteria("At least one search criterion is required")
    if criteria.get("all") is True:
        return CompiledSearchCommand(verb=verb, tokens=("ALL",))

    tokens: List[str] = []
    for name, value in criteria.items():
        if value is None:
            continue
        tokens.extend(_compile_entry(name, value))
    return CompiledSearchCommand(verb=verb, tokens=tuple(tokens))
