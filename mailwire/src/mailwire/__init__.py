"""
Module: mailwire.__init__

What:
  Aggregate package exports for the mailwire IMAP response engine and name the
  namespace segments (configuration, IMAP engine, utilities, CLI).

Why:
  Importers build clients from these names; an explicit list keeps helper
  modules from leaking into the public surface.

Interfaces:
  - config: Runtime configuration schema and loader.
  - imap: Transport, accumulator, segmenter, extractor, search compiler and
    the engine composing them.
  - utils: Logging, tag generation and encoded-word decoding.
"""

__version__ = "0.3.0"

__all__ = [
    "config",
    "imap",
    "utils",
]
