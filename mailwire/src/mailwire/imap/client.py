"""Stateful IMAP response engine.

What:
  Drive one IMAP connection: open the transport, log in, issue tagged
  commands, and turn the accumulated replies into structured results
  (sessions, folders, folder metadata, message records, search ids).

Why:
  Callers want ``fetch(1, 10)`` to return message records, not raw protocol
  lines. The engine owns the plumbing between the transport, the completion
  accumulator, the block segmenter and the field extractor, and it enforces
  which commands are legal in which connection stage.

How:
  :class:`ImapConfig` fills unset connection values from the runtime
  configuration. :class:`ImapEngine` keeps an explicit
  :class:`ConnectionState` instead of loose nullable fields; every command goes
  through :meth:`ImapEngine._execute`, which tags the line, sends it, and
  collects the reply with :class:`~mailwire.imap.accumulator.ResponseAccumulator`.

Interfaces:
  :class:`ImapConfig`, :class:`ConnectionStage`, :class:`ConnectionState` and
  :class:`ImapEngine` (``connect``, ``namespaces``, ``list_folders``,
  ``select``, ``fetch``, ``search``, ``check``, ``logout``).

Invariants & Safety:
  - One command in flight per engine; replies are correlated by tag.
  - A transport failure or incomplete reply closes the connection; the caller
    decides whether to reconnect.
  - Passwords and message content never reach the logs.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Tuple, Union

from imapclient import imap_utf7

from ..config.loader import get_runtime_config
from ..utils.ids import TagSequence
from ..utils.logging import JsonLogger, get_logger
from .accumulator import CRLF, ResponseAccumulator, ResponseBuffer
from .errors import (
    CommandRejected,
    ConnectionStateError,
    FolderNotSelected,
    IncompleteResponse,
    NotConnected,
    TransportError,
)
from .extract import MessageRecord, extract_message
from .responses import (
    Folder,
    FolderMetadata,
    Namespaces,
    Session,
    parse_folder_metadata,
    parse_folders,
    parse_namespaces,
    parse_search_ids,
    parse_session,
)
from .search import compile_criteria
from .segmenter import segment
from .transport import SocketTransport, Transport


HEADER_FIELDS = ("SUBJECT", "FROM", "TO", "MESSAGE-ID", "CONTENT-TYPE", "DATE")

_FETCH_BLOCK = re.compile(r"^\*\s+\d+\s+FETCH\b", re.IGNORECASE)


@dataclass
class ImapConfig:
    """Connection parameters for one IMAP account.

    What:
      Captures the credentials plus optional overrides for the transport and
      the accumulator guards.

    Why:
      Keeps call sites short: anything left as ``None`` is taken from the
      runtime configuration so operators tune timeouts in one file.

    How:
      :meth:`__post_init__` reads :func:`get_runtime_config` once and fills
      every unset attribute.

    Attributes:
      host: IMAP hostname.
      username: Login name.
      password: Password or app-specific token.
      port: Server port.
      tls: Whether to wrap the socket in TLS.
      timeout: Socket timeout in seconds.
      encoding: Text encoding of protocol lines.
      tag_prefix: Prefix for generated command tags.
      max_reads: Per-command read budget for the accumulator.
      response_deadline: Per-command time budget in seconds.
      read_size: Bytes requested per ``receive``.
    """

    host: str
    username: str
    password: str
    port: Optional[int] = None
    tls: Optional[bool] = None
    timeout: Optional[float] = None
    encoding: Optional[str] = None
    tag_prefix: Optional[str] = None
    max_reads: Optional[int] = None
    response_deadline: Optional[float] = None
    read_size: Optional[int] = None

    def __post_init__(self) -> None:
        settings = get_runtime_config()
        if self.port is None:
            self.port = settings.server.port
        if self.tls is None:
            self.tls = settings.server.tls
        if self.timeout is None:
            self.timeout = settings.server.timeout
        if self.encoding is None:
            self.encoding = settings.protocol.encoding
        if self.tag_prefix is None:
            self.tag_prefix = settings.protocol.tag_prefix
        if self.max_reads is None:
            self.max_reads = settings.protocol.max_reads
        if self.response_deadline is None:
            self.response_deadline = settings.protocol.response_deadline
        if self.read_size is None:
            self.read_size = settings.protocol.read_size


class ConnectionStage(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    SELECTED = "selected"
    LOGGED_OUT = "logged_out"


@dataclass
class ConnectionState:
    """Everything that exists only while a connection is open.

    ``transport`` and ``accumulator`` are set exactly when ``stage`` is
    ``CONNECTED``, ``AUTHENTICATED`` or ``SELECTED``; ``folder`` only when
    ``SELECTED``.
    """

    stage: ConnectionStage = ConnectionStage.DISCONNECTED
    transport: Optional[Transport] = None
    accumulator: Optional[ResponseAccumulator] = None
    session: Optional[Session] = None
    folder: Optional[FolderMetadata] = None


TransportFactory = Callable[[ImapConfig], Transport]


def open_socket_transport(config: ImapConfig) -> Transport:
    """Default transport factory: TCP (plus TLS when configured)."""

    return SocketTransport.open(
        config.host,
        config.port,
        tls=bool(config.tls),
        timeout=config.timeout,
        read_size=config.read_size or 65536,
    )


def quote(value: str) -> str:
    """Render ``value`` as an IMAP quoted string."""

    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class ImapEngine:
    """Context manager running tagged commands over one connection.

    What:
      Owns the transport, the accumulator and the connection state, and exposes
      one method per supported command.

    Why:
      Ensures every command follows the same send → accumulate → parse path and
      that stage rules (no FETCH before SELECT) are checked in one place.

    How:
      :meth:`__enter__` connects and logs in, :meth:`__exit__` logs out. Each
      command method calls :meth:`_execute` and hands the buffer to the
      matching parser.
    """

    def __init__(
        self,
        config: ImapConfig,
        *,
        transport_factory: Optional[TransportFactory] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory or open_socket_transport
        self._logger = (logger or get_logger("mailwire.imap")).bind(host=config.host)
        self._tags = TagSequence(config.tag_prefix or "A")
        self._state = ConnectionState()

    def __enter__(self) -> "ImapEngine":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.logout()

    @property
    def config(self) -> ImapConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session(self) -> Session:
        if self._state.session is None:
            raise NotConnected("Not connected to an IMAP server")
        return self._state.session

    @property
    def selected(self) -> FolderMetadata:
        if self._state.folder is None:
            raise FolderNotSelected("No folder selected; call select() first")
        return self._state.folder

    def _require(self, *stages: ConnectionStage) -> ConnectionState:
        """Return the state when its stage is one of ``stages``, raise otherwise."""

        state = self._state
        if state.stage in stages:
            return state
        if state.stage in (ConnectionStage.DISCONNECTED, ConnectionStage.LOGGED_OUT):
            raise NotConnected("Not connected to an IMAP server")
        if state.stage is ConnectionStage.CONNECTED:
            raise NotConnected("Connected but not logged in")
        if state.stage is ConnectionStage.AUTHENTICATED:
            raise FolderNotSelected("No folder selected; call select() first")
        raise ConnectionStateError(f"Operation not allowed while {state.stage.value}")

    def _drop_connection(self, stage: ConnectionStage = ConnectionStage.DISCONNECTED) -> None:
        transport = self._state.transport
        self._state = ConnectionState(stage=stage)
        if transport is not None:
            transport.close()

    def _send(self, transport: Transport, tag: str, command: str) -> None:
        line = f"{tag} {command}{CRLF}"
        transport.send(line.encode(self._config.encoding or "utf-8"))

    def _execute(
        self,
        command: str,
        *,
        tag: Optional[str] = None,
        verb: Optional[str] = None,
        stages: Tuple[ConnectionStage, ...] = (ConnectionStage.AUTHENTICATED, ConnectionStage.SELECTED),
    ) -> ResponseBuffer:
        """Send ``command`` tagged with ``tag`` and collect the full reply.

        What:
          Runs one command cycle on the open connection.

        Why:
          Centralises tagging, logging and failure handling so each command
          method only formats its line and parses its buffer.

        How:
          Generates a tag when none is given, sends the CRLF-terminated line,
          and waits on :meth:`ResponseAccumulator.collect`. Transport failures
          and incomplete replies close the connection before propagating;
          rejections leave it open.

        Args:
          command: Command text without tag or line terminator.
          tag: Explicit tag; generated when ``None``.
          verb: Name used in logs (defaults to the first word of ``command``).
          stages: Connection stages in which the command is legal.

        Returns:
          The complete reply buffer.
        """

        state = self._require(*stages)
        assert state.transport is not None and state.accumulator is not None
        tag = tag or self._tags.next()
        verb = verb or command.split(" ", 1)[0].upper()
        self._logger.debug("command_sent", tag=tag, verb=verb)
        try:
            self._send(state.transport, tag, command)
            buffer = state.accumulator.collect(tag)
        except CommandRejected as exc:
            self._logger.error("command_rejected", tag=tag, verb=verb, status=exc.status, text=exc.text)
            raise
        except (IncompleteResponse, TransportError) as exc:
            self._logger.error("connection_lost", tag=tag, verb=verb, error=str(exc))
            self._drop_connection()
            raise
        self._logger.info("command_completed", tag=tag, verb=verb, lines=len(buffer.lines), reads=buffer.reads)
        return buffer

    def connect(self) -> Session:
        """Open the transport, read the greeting and log in.

        Returns:
          The :class:`Session` parsed from the LOGIN completion (or an empty
          one for a ``PREAUTH`` greeting).

        Raises:
          ConnectionStateError: Already connected.
          CommandRejected: ``BYE`` greeting or rejected credentials.
          IncompleteResponse / TransportError: The stream failed.
        """

        if self._state.stage in (
            ConnectionStage.CONNECTED,
            ConnectionStage.AUTHENTICATED,
            ConnectionStage.SELECTED,
        ):
            raise ConnectionStateError("Already connected")
        transport = self._transport_factory(self._config)
        accumulator = ResponseAccumulator(
            transport,
            encoding=self._config.encoding or "utf-8",
            max_reads=self._config.max_reads,
            deadline=self._config.response_deadline,
        )
        self._state = ConnectionState(
            stage=ConnectionStage.CONNECTED,
            transport=transport,
            accumulator=accumulator,
        )
        try:
            greeting = accumulator.collect_greeting()
            self._logger.info("connected", port=self._config.port)
            if any(line.startswith("* PREAUTH") for line in greeting.lines):
                self._state.stage = ConnectionStage.AUTHENTICATED
                self._state.session = Session()
                return self._state.session
            command = f"LOGIN {quote(self._config.username)} {quote(self._config.password)}"
            buffer = self._execute(command, verb="LOGIN", stages=(ConnectionStage.CONNECTED,))
        except Exception:
            self._drop_connection()
            raise
        self._state.stage = ConnectionStage.AUTHENTICATED
        self._state.session = parse_session(buffer.completion or "")
        self._logger.info(
            "logged_in",
            username=self._config.username,
            protocol=self._state.session.protocol,
            session_id=self._state.session.id,
        )
        return self._state.session

    def namespaces(self, *, tag: Optional[str] = None) -> Namespaces:
        """Return the personal, other-user and shared namespaces."""

        buffer = self._execute("NAMESPACE", tag=tag)
        return parse_namespaces(buffer.lines)

    def list_folders(self, reference: str = "", pattern: str = "*", *, tag: Optional[str] = None) -> List[Folder]:
        """List folders under ``reference`` matching ``pattern``."""

        buffer = self._execute(f"LIST {quote(reference)} {quote(pattern)}", tag=tag)
        return parse_folders(buffer.lines)

    def select(self, folder: str, *, tag: Optional[str] = None) -> FolderMetadata:
        """Select ``folder`` for subsequent FETCH and SEARCH commands.

        A rejected SELECT leaves the connection authenticated with no folder
        selected.
        """

        if not folder:
            raise ValueError("Folder name is required")
        self._require(ConnectionStage.AUTHENTICATED, ConnectionStage.SELECTED)
        encoded = imap_utf7.encode(folder).decode("ascii")
        try:
            buffer = self._execute(f"SELECT {quote(encoded)}", tag=tag)
        except CommandRejected:
            self._state.stage = ConnectionStage.AUTHENTICATED
            self._state.folder = None
            raise
        metadata = parse_folder_metadata(folder, buffer.lines, buffer.completion)
        self._state.stage = ConnectionStage.SELECTED
        self._state.folder = metadata
        self._logger.info("folder_selected", folder=folder, exists=metadata.exists)
        return metadata

    def fetch(
        self,
        start: int,
        end: Union[int, str],
        *,
        byte_limit: Optional[int] = None,
        peek: bool = True,
        tag: Optional[str] = None,
    ) -> List[MessageRecord]:
        """Fetch headers and body text for messages ``start`` to ``end``.

        What:
          Issues one FETCH for the sequence range and returns a record per
          fetched message, in server order.

        Why:
          This is the engine's main path: accumulate a possibly huge reply,
          split it per message and extract fields without letting one broken
          message spoil the batch.

        How:
          Requests the header fields before ``BODY[TEXT]`` so body lines follow
          the header block; segments the buffer, keeps the ``* n FETCH``
          blocks and runs :func:`extract_message` on each. Soft extraction
          problems are logged as warnings and stay on the record.

        Args:
          start: First sequence number (1-based).
          end: Last sequence number, or ``"*"`` for the last message.
          byte_limit: Fetch only the first ``byte_limit`` bytes of each body.
          peek: Use ``BODY.PEEK`` so the ``\\Seen`` flag is left untouched.
          tag: Explicit command tag.

        Returns:
          Extracted message records.

        Raises:
          FolderNotSelected: :meth:`select` has not succeeded yet.
        """

        self._require(ConnectionStage.SELECTED)
        if start < 1:
            raise ValueError("start must be a positive sequence number")
        if byte_limit is not None and byte_limit <= 0:
            raise ValueError("byte_limit must be positive")
        section = "BODY.PEEK" if peek else "BODY"
        partial = f"<0.{byte_limit}>" if byte_limit else ""
        items = f"{section}[HEADER.FIELDS ({' '.join(HEADER_FIELDS)})] {section}[TEXT]{partial}"
        tag = tag or self._tags.next()
        buffer = self._execute(f"FETCH {start}:{end} ({items})", tag=tag)

        records: List[MessageRecord] = []
        for block in segment(buffer.lines):
            if not _FETCH_BLOCK.match(block[0]):
                self._logger.debug("block_skipped", tag=tag, line=block[0][:80])
                continue
            record = extract_message(block, tag)
            for problem in record.problems:
                self._logger.warning(
                    "record_degraded",
                    tag=tag,
                    sequence=record.sequence,
                    field=problem.field,
                    reason=problem.reason,
                )
            records.append(record)
        return records

    def search(
        self,
        criteria: Mapping[str, object],
        *,
        uid: bool = False,
        tag: Optional[str] = None,
    ) -> List[int]:
        """Run a SEARCH (or UID SEARCH) built from ``criteria``.

        Raises:
          EmptyCriteria: ``criteria`` is empty; nothing is sent.
          FolderNotSelected: No folder is selected.
        """

        compiled = compile_criteria(criteria, verb="UID SEARCH" if uid else "SEARCH")
        self._require(ConnectionStage.SELECTED)
        buffer = self._execute(compiled.text, tag=tag, verb=compiled.verb)
        return parse_search_ids(buffer.lines)

    def check(self, *, tag: Optional[str] = None) -> List[str]:
        """Request a server checkpoint and return the raw reply lines."""

        self._require(ConnectionStage.SELECTED)
        return self._execute("CHECK", tag=tag).lines

    def logout(self, *, tag: Optional[str] = None) -> None:
        """Send LOGOUT and close the transport; a no-op when not connected."""

        if self._state.stage not in (ConnectionStage.AUTHENTICATED, ConnectionStage.SELECTED):
            return
        try:
            self._execute("LOGOUT", tag=tag)
        finally:
            self._drop_connection(ConnectionStage.LOGGED_OUT)
            self._logger.info("logged_out")
