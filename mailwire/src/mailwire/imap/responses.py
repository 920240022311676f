"""Parsers for the one-shot command replies (LOGIN, NAMESPACE, LIST, SELECT, SEARCH).

Each parser receives the accumulated lines of one reply and returns a small
dataclass. They are deliberately regex based and tolerant: anything they do
not recognise is skipped rather than raised.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from imapclient import imap_utf7


@dataclass
class Session:
    """Details announced in the tagged LOGIN completion."""

    protocol: Optional[str] = None
    id: Optional[str] = None
    capabilities: List[str] = field(default_factory=list)


@dataclass
class Namespaces:
    """``(prefix, delimiter)`` pairs for each namespace class."""

    personal: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    other: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    shared: List[Tuple[str, Optional[str]]] = field(default_factory=list)


@dataclass
class Folder:
    name: str
    delimiter: Optional[str]
    attributes: List[str] = field(default_factory=list)


@dataclass
class FolderMetadata:
    """State reported by SELECT.

    ``codes`` holds every numeric ``OK [KEY n]`` response code, keyed by the
    lower-cased name (``uidvalidity``, ``uidnext``, ``unseen`` ...).
    """

    name: str
    exists: Optional[int] = None
    recent: Optional[int] = None
    flags: List[str] = field(default_factory=list)
    permanent_flags: List[str] = field(default_factory=list)
    codes: Dict[str, int] = field(default_factory=dict)
    read_only: bool = False

    @property
    def uidvalidity(self) -> Optional[int]:
        return self.codes.get("uidvalidity")

    @property
    def uidnext(self) -> Optional[int]:
        return self.codes.get("uidnext")


_CAPABILITY = re.compile(r"\[CAPABILITY ([^\]]+)\]", re.IGNORECASE)
_SESSION_ID = re.compile(r"SESSIONID=<([^>]+)>", re.IGNORECASE)
_NAMESPACE_ENTRY = re.compile(r'\("((?:[^"\\]|\\.)*)"\s+(?:"((?:[^"\\]|\\.)*)"|NIL)\)', re.IGNORECASE)
_LIST = re.compile(r'^LIST \((?P<attributes>[^)]*)\) (?P<delimiter>"[^"]*"|NIL) (?P<name>.+)$', re.IGNORECASE)
_FLAGS = re.compile(r"FLAGS \(([^)]*)\)", re.IGNORECASE)
_RESPONSE_CODE = re.compile(r"^OK \[(?P<code>[^\]]+)\]", re.IGNORECASE)


def _untagged(lines: Sequence[str]) -> List[str]:
    return [line[1:].lstrip() for line in lines if line.startswith("*")]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def _folder_name(value: str) -> str:
    name = _unquote(value)
    try:
        return imap_utf7.decode(name.encode("ascii"))
    except ValueError:
        # Plain UTF-8 names (UTF8=ACCEPT) or broken modified UTF-7 are kept as sent.
        return name


def _flag_names(text: str) -> List[str]:
    # System flags lose their leading backslash; keywords are kept as-is.
    return [flag.lstrip("\\") for flag in text.split() if flag]


def parse_session(completion: str) -> Session:
    """Read capabilities and the session id from a LOGIN completion line."""

    session = Session()
    capability = _CAPABILITY.search(completion)
    if capability:
        session.capabilities = capability.group(1).split()
        if session.capabilities:
            session.protocol = session.capabilities[0]
    session_id = _SESSION_ID.search(completion)
    if session_id:
        session.id = session_id.group(1)
    return session


def parse_namespaces(lines: Sequence[str]) -> Namespaces:
    namespaces = Namespaces()
    for line in _untagged(lines):
        if not line.upper().startswith("NAMESPACE "):
            continue
        groups = _split_namespace_groups(line[len("NAMESPACE "):])
        targets = (namespaces.personal, namespaces.other, namespaces.shared)
        for target, group in zip(targets, groups):
            for prefix, delimiter in _NAMESPACE_ENTRY.findall(group):
                target.append((prefix, delimiter or None))
        break
    return namespaces


def _split_namespace_groups(text: str) -> List[str]:
    """Split ``((..)) NIL ((..))`` into its three top-level groups."""

    groups: List[str] = []
    depth = 0
    start = 0
    in_quote = False
    for index, char in enumerate(text):
        if char == '"' and (index == 0 or text[index - 1] != "\\"):
            in_quote = not in_quote
        if in_quote:
            continue
        if char == "(":
            if depth == 0:
                start = index
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                groups.append(text[start:index + 1])
        elif depth == 0 and text[index:index + 3].upper() == "NIL":
            groups.append("")
    return groups


def parse_folders(lines: Sequence[str]) -> List[Folder]:
    folders: List[Folder] = []
    for line in _untagged(lines):
        match = _LIST.match(line)
        if not match:
            continue
        delimiter = match.group("delimiter")
        folders.append(
            Folder(
                name=_folder_name(match.group("name")),
                delimiter=None if delimiter.upper() == "NIL" else _unquote(delimiter),
                attributes=_flag_names(match.group("attributes")),
            )
        )
    return folders


def parse_folder_metadata(name: str, lines: Sequence[str], completion: Optional[str] = None) -> FolderMetadata:
    metadata = FolderMetadata(name=name)
    for line in _untagged(lines):
        words = line.split()
        if len(words) >= 2 and words[0].isdigit():
            if words[1].upper() == "EXISTS":
                metadata.exists = int(words[0])
            elif words[1].upper() == "RECENT":
                metadata.recent = int(words[0])
            continue
        if line.upper().startswith("FLAGS"):
            flags = _FLAGS.match(line)
            if flags:
                metadata.flags = _flag_names(flags.group(1))
            continue
        code = _RESPONSE_CODE.match(line)
        if not code:
            continue
        text = code.group("code")
        if text.upper().startswith("PERMANENTFLAGS"):
            flags = _FLAGS.search(text)
            if flags:
                metadata.permanent_flags = _flag_names(flags.group(1))
            continue
        parts = text.split()
        if len(parts) == 2 and parts[1].isdigit():
            metadata.codes[parts[0].lower()] = int(parts[1])
    if completion is not None and "[READ-ONLY]" in completion.upper():
        metadata.read_only = True
    return metadata


def parse_search_ids(lines: Sequence[str]) -> List[int]:
    ids: List[int] = []
    for line in _untagged(lines):
        words = line.split()
        if not words or words[0].upper() != "SEARCH":
            continue
        ids.extend(int(word) for word in words[1:] if word.isdigit())
    return ids
