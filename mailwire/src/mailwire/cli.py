"""mailwire command-line interface.

What:
  Provide a Typer-based entry point that connects to an IMAP server and runs
  one of ``folders``, ``fetch`` or ``search``, printing JSON on stdout.

Why:
  Operators need a quick way to see what the engine extracts from a real
  mailbox (which headers decode, which records degrade) without writing
  Python.

How:
  Resolve credentials from options or ``MAILWIRE_*`` environment variables,
  fill the rest from the runtime configuration, run the command inside an
  :class:`~mailwire.imap.client.ImapEngine` context, and serialise the result.
  Engine logs go to stderr as JSON lines; ``--verbose`` lowers their threshold.

Interfaces:
  ``app`` (Typer application), ``folders``, ``fetch``, ``search``, ``main``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - Passwords never appear in output or logs.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, NoReturn, Optional

import typer

from .config.loader import ConfigLoadError, get_runtime_config
from .imap.client import ImapConfig, ImapEngine, open_socket_transport
from .imap.errors import ImapError
from .imap.extract import MessageRecord
from .utils.logging import get_logger


app = typer.Typer(help="mailwire IMAP response engine")

LOGGER = logging.getLogger("mailwire.cli")


def _connection_options(
    host: Optional[str],
    user: str,
    password: str,
    port: Optional[int],
    tls: Optional[bool],
) -> ImapConfig:
    """Build an :class:`ImapConfig`, falling back to the configured server host."""

    runtime = get_runtime_config()
    resolved_host = host or runtime.server.host
    if not resolved_host:
        raise typer.BadParameter("no host given and none configured", param_hint="--host")
    return ImapConfig(host=resolved_host, username=user, password=password, port=port, tls=tls)


def _engine(config: ImapConfig, verbose: bool) -> ImapEngine:
    logger = get_logger("mailwire.imap", threshold="DEBUG" if verbose else "WARN")
    return ImapEngine(config, transport_factory=open_socket_transport, logger=logger)


def record_to_dict(record: MessageRecord) -> Dict[str, Any]:
    """Serialise ``record`` to JSON-compatible primitives."""

    if isinstance(record.date, datetime):
        date: Optional[str] = record.date.isoformat()
    elif record.date is None:
        date = None
    else:
        date = str(record.date)
    return {
        "sequence": record.sequence,
        "from": record.from_,
        "to": record.to,
        "subject": record.subject,
        "message_id": record.message_id,
        "content_type": record.content_type,
        "date": date,
        "date_valid": record.date_valid,
        "body": record.body,
        "problems": [{"field": p.field, "reason": p.reason} for p in record.problems],
    }


def _fail(message: str, exc: Exception) -> NoReturn:
    LOGGER.error("%s: %s", message, exc)
    typer.echo(f"{message}: {exc}", err=True)
    raise typer.Exit(code=1) from exc


HostOption = typer.Option(None, "--host", envvar="MAILWIRE_HOST", help="IMAP server hostname")
UserOption = typer.Option(..., "--user", envvar="MAILWIRE_USER", help="Login name")
PasswordOption = typer.Option(..., "--password", envvar="MAILWIRE_PASSWORD", help="Password or app token")
PortOption = typer.Option(None, "--port", help="Override the configured port")
TlsOption = typer.Option(None, "--tls/--no-tls", help="Override the configured TLS setting")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Emit debug logs on stderr")


@app.command("folders")
def folders(
    host: Optional[str] = HostOption,
    user: str = UserOption,
    password: str = PasswordOption,
    port: Optional[int] = PortOption,
    tls: Optional[bool] = TlsOption,
    pattern: str = typer.Option("*", help="LIST pattern"),
    verbose: bool = VerboseOption,
) -> None:
    """List folders visible to the account."""

    try:
        config = _connection_options(host, user, password, port, tls)
        with _engine(config, verbose) as engine:
            result = engine.list_folders("", pattern)
    except (ConfigLoadError, ImapError) as exc:
        _fail("folders failed", exc)
    typer.echo(
        json.dumps(
            [{"name": f.name, "delimiter": f.delimiter, "attributes": f.attributes} for f in result],
            ensure_ascii=False,
        )
    )


@app.command("fetch")
def fetch(
    folder: str = typer.Argument(..., help="Folder to select"),
    start: int = typer.Argument(..., help="First sequence number"),
    end: str = typer.Argument(..., help="Last sequence number or '*'"),
    host: Optional[str] = HostOption,
    user: str = UserOption,
    password: str = PasswordOption,
    port: Optional[int] = PortOption,
    tls: Optional[bool] = TlsOption,
    byte_limit: Optional[int] = typer.Option(None, help="Fetch at most this many body bytes"),
    peek: bool = typer.Option(True, "--peek/--no-peek", help="Leave the \\Seen flag untouched"),
    verbose: bool = VerboseOption,
) -> None:
    """Fetch messages START..END from FOLDER and print them as JSON."""

    if end != "*" and not end.isdigit():
        raise typer.BadParameter("END must be a number or '*'", param_hint="END")
    try:
        config = _connection_options(host, user, password, port, tls)
        with _engine(config, verbose) as engine:
            engine.select(folder)
            records = engine.fetch(start, end if end == "*" else int(end), byte_limit=byte_limit, peek=peek)
    except (ConfigLoadError, ImapError, ValueError) as exc:
        _fail("fetch failed", exc)
    typer.echo(json.dumps([record_to_dict(record) for record in records], ensure_ascii=False))


@app.command("search")
def search(
    folder: str = typer.Argument(..., help="Folder to select"),
    criteria: str = typer.Option(..., help='Criteria as JSON, e.g. \'{"seen": false}\''),
    host: Optional[str] = HostOption,
    user: str = UserOption,
    password: str = PasswordOption,
    port: Optional[int] = PortOption,
    tls: Optional[bool] = TlsOption,
    uid: bool = typer.Option(False, "--uid", help="Return UIDs instead of sequence numbers"),
    verbose: bool = VerboseOption,
) -> None:
    """Search FOLDER and print the matching ids."""

    try:
        parsed = json.loads(criteria)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"invalid JSON: {exc}", param_hint="--criteria") from exc
    if not isinstance(parsed, dict):
        raise typer.BadParameter("criteria must be a JSON object", param_hint="--criteria")
    try:
        config = _connection_options(host, user, password, port, tls)
        with _engine(config, verbose) as engine:
            engine.select(folder)
            ids = engine.search(parsed, uid=uid)
    except (ConfigLoadError, ImapError, ValueError) as exc:
        _fail("search failed", exc)
    typer.echo(json.dumps(ids))


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - module execution
    main()
