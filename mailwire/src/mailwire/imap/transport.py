"""Byte-stream transports consumed by the response engine.

What:
  Describe the minimal ``send``/``receive``/``close`` contract the engine needs
  and provide a socket-backed implementation with optional TLS.

Why:
  The accumulation and extraction logic must not care whether bytes come from a
  TLS socket, a proxy or a scripted test double. Keeping the contract tiny lets
  tests replay exact chunk boundaries.

How:
  :class:`Transport` is a :class:`typing.Protocol`. :class:`SocketTransport`
  wraps :mod:`socket`/:mod:`ssl` and converts every :class:`OSError` into
  :class:`~mailwire.imap.errors.TransportError`.

Interfaces:
  :class:`Transport`, :class:`SocketTransport`.

Invariants & Safety:
  - ``receive`` returns ``b""`` once the peer has closed the stream.
  - Transport failures are raised, never swallowed or retried.
"""
from __future__ import annotations

import socket
import ssl
from typing import Optional, Protocol

from .errors import TransportError


class Transport(Protocol):
    """Bidirectional byte stream used by :class:`~mailwire.imap.client.ImapEngine`."""

    def send(self, data: bytes) -> None:
        ...

    def receive(self) -> bytes:
        ...

    def close(self) -> None:
        ...


class SocketTransport:
    """TCP transport, TLS-wrapped when requested.

    What:
      Own a connected socket and expose it through the :class:`Transport`
      contract.

    Why:
      The engine needs a concrete stream for real servers; tests substitute a
      fake with the same three methods.

    How:
      :meth:`open` connects with :func:`socket.create_connection` and wraps the
      socket with a default :class:`ssl.SSLContext` when ``tls`` is set.
    """

    def __init__(self, sock: socket.socket, *, read_size: int = 65536) -> None:
        self._sock: Optional[socket.socket] = sock
        self._read_size = read_size

    @classmethod
    def open(
        cls,
        host: str,
        port: int,
        *,
        tls: bool = True,
        timeout: Optional[float] = None,
        read_size: int = 65536,
        context: Optional[ssl.SSLContext] = None,
    ) -> "SocketTransport":
        """Connect to ``host:port`` and return a ready transport.

        Raises:
          TransportError: When the TCP connection or TLS handshake fails.
        """

        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise TransportError(f"Unable to connect to {host}:{port}: {exc}") from exc
        if tls:
            context = context or ssl.create_default_context()
            try:
                sock = context.wrap_socket(sock, server_hostname=host)
            except OSError as exc:
                sock.close()
                raise TransportError(f"TLS handshake with {host}:{port} failed: {exc}") from exc
        return cls(sock, read_size=read_size)

    @property
    def socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("Transport is closed")
        return self._sock

    def send(self, data: bytes) -> None:
        try:
            self.socket.sendall(data)
        except OSError as exc:
            raise TransportError(f"Write failed: {exc}") from exc

    def receive(self) -> bytes:
        try:
            return self.socket.recv(self._read_size)
        except OSError as exc:
            raise TransportError(f"Read failed: {exc}") from exc

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        finally:
            self._sock = None
