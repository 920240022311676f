"""Decode MIME encoded words found in raw IMAP header lines.

What:
  Turn header text containing ``=?charset?encoding?payload?=`` tokens into
  plain Unicode text while leaving every other character untouched.

Why:
  FETCH replies hand back header fields exactly as the sender wrote them.
  Subjects and display names with non-ASCII characters arrive as encoded words,
  and the field extractor must present them readably without ever losing the
  original text when a token is broken.

How:
  A single regular expression locates candidate tokens. Each match is decoded
  with :mod:`base64` (``B``) or the header ``Q`` rule (``_`` is a space and
  each ``=HH`` is one byte; any other ``=`` stays literal), then the bytes are
  interpreted under the declared charset. Any failure returns the token
  verbatim.

Interfaces:
  :func:`decode_encoded_words`.

Invariants & Safety:
  - Text outside tokens is copied unchanged, so decoding plain text is the
    identity.
  - A token that cannot be decoded is left as-is, never dropped.
"""
from __future__ import annotations

import base64
import binascii
import re
from typing import Optional


ENCODED_WORD = re.compile(r"=\?([^?\s]+)\?([BbQq])\?([^?\s]*)\?=")
"""Pattern matching a single RFC 2047 encoded word."""

_Q_ESCAPE = re.compile(rb"=([0-9A-Fa-f]{2})")


def decode_encoded_words(text: str) -> str:
    """Replace every encoded word in ``text`` with its decoded form.

    What:
      Scans ``text`` for encoded-word tokens and substitutes the decoded text in
      place.

    Why:
      Header values extracted line by line keep their transfer encoding; the
      caller needs readable strings.

    How:
      Delegates each regex match to :func:`_decode_token`, which falls back to
      the original token on any error.

    Args:
      text: Raw header value.

    Returns:
      The header value with all decodable tokens replaced.
    """

    if "=?" not in text:
        return text
    return ENCODED_WORD.sub(_replace, text)


def _replace(match: "re.Match[str]") -> str:
    decoded = _decode_token(match.group(1), match.group(2), match.group(3))
    return match.group(0) if decoded is None else decoded


def _decode_token(charset: str, encoding: str, payload: str) -> Optional[str]:
    """Decode one token, returning ``None`` when it cannot be decoded.

    The RFC 2231 language suffix (``utf-8*en``) is ignored when resolving the
    charset.
    """

    charset = charset.split("*", 1)[0]
    try:
        raw = payload.encode("ascii")
    except UnicodeEncodeError:
        return None
    if encoding.upper() == "B":
        # Some mailers drop the trailing padding.
        raw += b"=" * (-len(raw) % 4)
        try:
            data = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError):
            return None
    else:
        data = _Q_ESCAPE.sub(lambda hexpair: bytes([int(hexpair.group(1), 16)]), raw.replace(b"_", b" "))
    try:
        return data.decode(charset)
    except (LookupError, UnicodeDecodeError):
        return None
