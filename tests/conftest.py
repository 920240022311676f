"""Shared pytest setup: source-tree imports and a pinned runtime configuration.

Every test runs against ``tests/data/config.yaml`` (host
``imap.test.invalid``, tag prefix ``T``, ``max_reads`` 50), which the engine
and CLI tests rely on for default ports, tags and read limits.
``mailwire/src`` goes first on ``sys.path`` so the checkout is tested rather
than an installed copy.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "mailwire" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from mailwire.config.loader import reset_runtime_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Point ``MAILWIRE_CONFIG_PATH`` at the test config with a fresh loader cache."""

    monkeypatch.setenv("MAILWIRE_CONFIG_PATH", str(CONFIG_PATH))
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()
