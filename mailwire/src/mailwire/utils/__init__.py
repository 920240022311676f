"""Expose the public utility surface for mailwire.

Interfaces:
  ``get_logger``, ``JsonLogger``, ``TagSequence`` and
  ``decode_encoded_words``.
"""

from .ids import TagSequence
from .logging import JsonLogger, get_logger
from .mime import decode_encoded_words

__all__ = [
    "get_logger",
    "JsonLogger",
    "TagSequence",
    "decode_encoded_words",
]
