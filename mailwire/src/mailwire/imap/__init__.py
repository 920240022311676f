"""Facade for the IMAP response engine.

What:
  Surface the engine, its configuration dataclass, the record types it
  returns and the error taxonomy.

Why:
  Keeping the import surface small lets the accumulator, segmenter and
  extractor evolve without call sites depending on internal modules.

Interfaces:
  ``ImapConfig``, ``ImapEngine``, ``MessageRecord``, ``compile_criteria`` and
  the exceptions from :mod:`mailwire.imap.errors`.
"""

from .client import ConnectionStage, ImapConfig, ImapEngine
from .errors import (
    CommandRejected,
    EmptyCriteria,
    FolderNotSelected,
    ImapError,
    IncompleteResponse,
    InvalidCriterion,
    NotConnected,
    TransportError,
)
from .extract import InvalidDate, MalformedRecord, MessageRecord
from .search import HeaderCriterion, compile_criteria

__all__ = [
    "ConnectionStage",
    "ImapConfig",
    "ImapEngine",
    "MessageRecord",
    "InvalidDate",
    "MalformedRecord",
    "HeaderCriterion",
    "compile_criteria",
    "ImapError",
    "TransportError",
    "IncompleteResponse",
    "CommandRejected",
    "EmptyCriteria",
    "InvalidCriterion",
    "NotConnected",
    "FolderNotSelected",
]
