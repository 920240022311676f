"""End-to-end tests for the ``mailwire`` command-line interface.

What:
  Invoke the Typer application with :class:`typer.testing.CliRunner` against a
  scripted transport and check the JSON printed on stdout, the commands sent to
  the server and the exit codes.

Why:
  The CLI is the operator's window onto the engine. These tests make sure
  option parsing, environment fallbacks, runtime configuration defaults and
  error exits are wired together the way the engine tests assume.

How:
  ``mailwire.cli.open_socket_transport`` is monkeypatched to return a
  :class:`FakeTransport` loaded with one reply per command. The host comes
  from ``tests/data/config.yaml`` unless ``--host`` is given.

Invariants & Safety:
  - No test opens a network connection.
  - Fixtures produce records without extraction problems so no warning logs
    are emitted during a successful run.
"""

import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

UNIT_DIR = Path(__file__).resolve().parents[1] / "unit"
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import GREETING, LOGIN_OK, FakeTransport, lines

from mailwire.cli import app


runner = CliRunner()

SELECT_OK = lines("* 1 EXISTS", "{tag} OK [READ-WRITE] Select completed.")
LOGOUT_OK = lines("* BYE Logging out", "{tag} OK Logout completed.")
CREDENTIALS = ["--user", "user", "--password", "s3cret"]


@pytest.fixture
def server(monkeypatch: pytest.MonkeyPatch):
    """Install a transport factory and return a function that scripts it."""

    state = {}

    def script(*replies):
        transport = FakeTransport([GREETING], replies)
        state["transport"] = transport
        state["host"] = None

        def factory(config):
            state["host"] = config.host
            return transport

        monkeypatch.setattr("mailwire.cli.open_socket_transport", factory)
        return state

    return script


def test_folders_prints_json(server):
    state = server(
        LOGIN_OK,
        lines('* LIST (\\HasNoChildren) "/" INBOX', '* LIST (\\Drafts) "/" "&AMk-t&AOk-"', "{tag} OK List completed."),
        LOGOUT_OK,
    )

    result = runner.invoke(app, ["folders", *CREDENTIALS])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == [
        {"name": "INBOX", "delimiter": "/", "attributes": ["HasNoChildren"]},
        {"name": "Été", "delimiter": "/", "attributes": ["Drafts"]},
    ]
    assert state["host"] == "imap.test.invalid"
    assert state["transport"].commands == ['LOGIN "user" "s3cret"', 'LIST "" "*"', "LOGOUT"]
    assert state["transport"].closed


def test_fetch_prints_records(server):
    state = server(
        LOGIN_OK,
        SELECT_OK,
        lines(
            "* 1 FETCH (BODY[HEADER.FIELDS (SUBJECT FROM TO MESSAGE-ID CONTENT-TYPE DATE)] {120}",
            "Subject: =?UTF-8?Q?Caf=C3=A9?=",
            "From: bob@example.org",
            "To: alice@example.org",
            "Message-ID: <1@example.org>",
            "Date: Tue, 05 Mar 2024 10:00:00 +0000",
            "",
            " BODY[TEXT]<0> {8}",
            "see you",
            ")",
            "{tag} OK Fetch completed.",
        ),
        LOGOUT_OK,
    )

    result = runner.invoke(
        app,
        ["fetch", "INBOX", "1", "*", "--host", "mail.example.org", "--byte-limit", "64", *CREDENTIALS],
    )

    assert result.exit_code == 0, result.output
    (record,) = json.loads(result.stdout)
    assert record["sequence"] == 1
    assert record["subject"] == "Café"
    assert record["from"] == "bob@example.org"
    assert record["date"] == "2024-03-05T10:00:00+00:00"
    assert record["date_valid"] is True
    assert record["body"] == "see you"
    assert record["problems"] == []
    assert state["host"] == "mail.example.org"
    fetch_command = state["transport"].commands[2]
    assert fetch_command.startswith("FETCH 1:* (BODY.PEEK[HEADER.FIELDS")
    assert fetch_command.endswith("BODY.PEEK[TEXT]<0.64>)")


def test_search_uses_environment_credentials(server):
    state = server(
        LOGIN_OK,
        SELECT_OK,
        lines("* SEARCH 3 5 8", "{tag} OK Search completed."),
        LOGOUT_OK,
    )

    result = runner.invoke(
        app,
        ["search", "INBOX", "--criteria", '{"seen": false, "from": "bob"}', "--uid"],
        env={"MAILWIRE_USER": "envuser", "MAILWIRE_PASSWORD": "envpass"},
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == [3, 5, 8]
    assert state["transport"].commands[0] == 'LOGIN "envuser" "envpass"'
    assert state["transport"].commands[2] == "UID SEARCH UNSEEN FROM bob"


def test_rejected_login_exits_with_error(server):
    state = server(lines("{tag} NO [AUTHENTICATIONFAILED] Authentication failed."))

    result = runner.invoke(app, ["folders", *CREDENTIALS])

    assert result.exit_code == 1
    assert state["transport"].closed


def test_empty_criteria_exits_with_error(server):
    state = server(LOGIN_OK, SELECT_OK, LOGOUT_OK)

    result = runner.invoke(app, ["search", "INBOX", "--criteria", "{}", *CREDENTIALS])

    assert result.exit_code == 1
    assert all(not command.startswith("SEARCH") for command in state["transport"].commands)


@pytest.mark.parametrize("criteria", ["not json", "[1, 2]"])
def test_malformed_criteria_is_a_usage_error(server, criteria):
    server()

    result = runner.invoke(app, ["search", "INBOX", "--criteria", criteria, *CREDENTIALS])

    assert result.exit_code == 2


def test_bad_range_end_is_a_usage_error(server):
    server()

    result = runner.invoke(app, ["fetch", "INBOX", "1", "last", *CREDENTIALS])

    assert result.exit_code == 2


def test_search_empty_folder_exits_with_error(server):
    state = server(LOGIN_OK, LOGOUT_OK)

    result = runner.invoke(app, ["search", "", "--criteria", '{"seen": true}', *CREDENTIALS])

    assert result.exit_code == 1
    assert "Folder name is required" in result.output
    assert all(not command.startswith("SELECT") for command in state["transport"].commands)
