"""Pytest fixtures for unit tests driving the engine over a fake transport.

What:
  Make ``tests/unit`` importable and expose a factory fixture that builds an
  :class:`~mailwire.imap.client.ImapEngine` wired to a :class:`FakeTransport`.

Why:
  Engine tests need to script server replies per command and inspect what was
  sent and logged. Centralising the wiring keeps each test focused on the
  conversation it checks.

Interfaces:
  :func:`engine_factory`, :class:`EngineHarness`.
"""

import io
import json
import sys
from pathlib import Path

import pytest

from mailwire.imap.client import ImapConfig, ImapEngine
from mailwire.utils.logging import get_logger

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import GREETING, FakeTransport


class EngineHarness:
    """Engine plus the transport and log stream behind it."""

    def __init__(self, engine: ImapEngine, transport: FakeTransport, stream: io.StringIO) -> None:
        self.engine = engine
        self.transport = transport
        self.stream = stream

    def log_entries(self):
        return [json.loads(line) for line in self.stream.getvalue().splitlines()]


@pytest.fixture
def engine_factory():
    """Return a callable building an :class:`EngineHarness` from scripted replies.

    The callable takes the per-command reply templates (LOGIN first unless the
    greeting is ``PREAUTH``) plus optional ``greeting`` and ``config`` keyword
    overrides.
    """

    def build(*replies, greeting=GREETING, config=None, **transport_kwargs):
        transport = FakeTransport([greeting], replies, **transport_kwargs)
        stream = io.StringIO()
        engine = ImapEngine(
            config or ImapConfig(host="imap.test.invalid", username="user", password="s3cret"),
            transport_factory=lambda _config: transport,
            logger=get_logger("mailwire.imap", stream=stream),
        )
        return EngineHarness(engine, transport, stream)

    return build
