"""Engine-level tests covering the full command cycle over a fake transport.

What:
  Drive :class:`mailwire.imap.client.ImapEngine` through login, folder
  selection, FETCH, SEARCH and logout with scripted replies.

Why:
  The engine is where the accumulator, segmenter, extractor and search
  compiler meet the connection state machine. These tests make sure each
  command sends the expected line, each reply lands in the right parser, and
  failures leave the connection in a well-defined stage.

How:
  Use the ``engine_factory`` fixture from ``conftest.py`` to script one reply
  per command; ``{tag}`` in a reply is replaced with the tag the engine chose.
  The runtime configuration fixture sets the tag prefix to ``T``.
"""

import pytest

from fakes import LOGIN_OK, lines

from mailwire.imap.client import ConnectionStage, ImapConfig
from mailwire.imap.errors import (
    CommandRejected,
    ConnectionStateError,
    EmptyCriteria,
    FolderNotSelected,
    IncompleteResponse,
    NotConnected,
)
from mailwire.imap.extract import InvalidDate


SELECT_OK = lines(
    "* FLAGS (\\Answered \\Seen)",
    "* 2 EXISTS",
    "* 0 RECENT",
    "* OK [UIDVALIDITY 1700000000] UIDs valid",
    "{tag} OK [READ-WRITE] Select completed.",
)

FETCH_REPLY = [
    lines(
        "* 1 FETCH (BODY[HEADER.FIELDS (SUBJECT FROM TO MESSAGE-ID CONTENT-TYPE DATE)] {96}",
        "Subject: =?UTF-8?B?SGVsbG8=?=",
        "From: alice@example.org",
        "Date: Tue, 05 Mar 2024 10:00:00 +0000",
        "",
        " BODY[TEXT] {12}",
        "first body",
        ")",
    )
    + "* 3 EXI",
    lines("STS", "* 2 FETCH (BODY[HEADER.FIELDS (SUBJECT FROM TO MESSAGE-ID CONTENT-TYPE DATE)] {40}")
    + "Subject: sec",
    lines("ond", "Date: not a date", "", " BODY[TEXT] {16}", "line a", "line b", ")"),
    lines("{tag} OK Fetch completed."),
]

LOGOUT_OK = lines("* BYE Logging out", "{tag} OK Logout completed.")


def _selected(engine_factory, *replies):
    harness = engine_factory(LOGIN_OK, SELECT_OK, *replies)
    harness.engine.connect()
    harness.engine.select("INBOX")
    return harness


def test_connect_logs_in_and_parses_session(engine_factory):
    harness = engine_factory(LOGIN_OK)

    session = harness.engine.connect()

    assert harness.transport.sent == ['T1 LOGIN "user" "s3cret"\r\n']
    assert session.protocol == "IMAP4rev1"
    assert session.id == "s3ss10n"
    assert harness.engine.state.stage is ConnectionStage.AUTHENTICATED
    assert harness.engine.session is session


def test_password_never_logged(engine_factory):
    harness = engine_factory(LOGIN_OK)
    harness.engine.connect()

    assert "s3cret" not in harness.stream.getvalue()
    events = [entry["msg"] for entry in harness.log_entries()]
    assert events == ["connected", "command_sent", "command_completed", "logged_in"]
    assert {entry["host"] for entry in harness.log_entries()} == {"imap.test.invalid"}


def test_preauth_greeting_skips_login(engine_factory):
    harness = engine_factory(greeting=lines("* PREAUTH IMAP4rev1 server logged in as user"))

    harness.engine.connect()

    assert harness.transport.sent == []
    assert harness.engine.state.stage is ConnectionStage.AUTHENTICATED


def test_bye_greeting_disconnects(engine_factory):
    harness = engine_factory(greeting=lines("* BYE server shutting down"))

    with pytest.raises(CommandRejected):
        harness.engine.connect()

    assert harness.engine.state.stage is ConnectionStage.DISCONNECTED
    assert harness.transport.closed


def test_rejected_login_disconnects(engine_factory):
    harness = engine_factory(lines("{tag} NO [AUTHENTICATIONFAILED] Authentication failed."))

    with pytest.raises(CommandRejected) as excinfo:
        harness.engine.connect()

    assert excinfo.value.status == "NO"
    assert harness.engine.state.stage is ConnectionStage.DISCONNECTED
    assert harness.transport.closed


def test_connect_twice_is_rejected(engine_factory):
    harness = engine_factory(LOGIN_OK)
    harness.engine.connect()

    with pytest.raises(ConnectionStateError):
        harness.engine.connect()


def test_commands_require_connection(engine_factory):
    harness = engine_factory()

    with pytest.raises(NotConnected):
        harness.engine.namespaces()
    with pytest.raises(NotConnected):
        harness.engine.fetch(1, 1)


def test_fetch_requires_selected_folder(engine_factory):
    harness = engine_factory(LOGIN_OK)
    harness.engine.connect()

    with pytest.raises(FolderNotSelected):
        harness.engine.fetch(1, 5)
    with pytest.raises(FolderNotSelected):
        harness.engine.selected
    assert len(harness.transport.sent) == 1


def test_select_parses_metadata(engine_factory):
    harness = _selected(engine_factory)

    metadata = harness.engine.selected
    assert harness.transport.commands[-1] == 'SELECT "INBOX"'
    assert metadata.exists == 2
    assert metadata.uidvalidity == 1700000000
    assert harness.engine.state.stage is ConnectionStage.SELECTED


def test_select_encodes_folder_name(engine_factory):
    harness = engine_factory(LOGIN_OK, SELECT_OK)
    harness.engine.connect()

    metadata = harness.engine.select("Éléments")

    assert harness.transport.commands[-1] == 'SELECT "&AMk-l&AOk-ments"'
    assert metadata.name == "Éléments"


def test_rejected_select_returns_to_authenticated(engine_factory):
    harness = _selected(engine_factory, lines("{tag} NO Mailbox doesn't exist: Nope"))

    with pytest.raises(CommandRejected):
        harness.engine.select("Nope")

    assert harness.engine.state.stage is ConnectionStage.AUTHENTICATED
    assert harness.engine.state.folder is None
    with pytest.raises(FolderNotSelected):
        harness.engine.fetch(1, 1)


def test_fetch_extracts_records(engine_factory):
    harness = _selected(engine_factory, FETCH_REPLY)

    records = harness.engine.fetch(1, 2)

    assert harness.transport.commands[-1] == (
        "FETCH 1:2 (BODY.PEEK[HEADER.FIELDS (SUBJECT FROM TO MESSAGE-ID CONTENT-TYPE DATE)] BODY.PEEK[TEXT])"
    )
    assert [record.sequence for record in records] == [1, 2]
    first, second = records
    assert first.subject == "Hello"
    assert first.from_ == "alice@example.org"
    assert first.date_valid
    assert first.body == "first body"
    assert first.problems == []
    assert second.subject == "second"
    assert second.body == "line a\nline b"
    assert second.date == InvalidDate("not a date")


def test_fetch_logs_degraded_records_and_skipped_blocks(engine_factory):
    harness = _selected(engine_factory, FETCH_REPLY)

    harness.engine.fetch(1, 2)

    entries = harness.log_entries()
    degraded = [entry for entry in entries if entry["msg"] == "record_degraded"]
    assert len(degraded) == 1
    assert degraded[0]["lvl"] == "WARN"
    assert degraded[0]["sequence"] == 2
    assert degraded[0]["field"] == "date"
    assert any(entry["msg"] == "block_skipped" for entry in entries)


def test_fetch_partial_body_without_peek(engine_factory):
    harness = _selected(engine_factory, lines("{tag} OK Fetch completed."))

    assert harness.engine.fetch(3, "*", byte_limit=512, peek=False) == []
    assert harness.transport.commands[-1].endswith("BODY[TEXT]<0.512>)")
    assert harness.transport.commands[-1].startswith("FETCH 3:* (BODY[HEADER.FIELDS")


def test_fetch_validates_range(engine_factory):
    harness = _selected(engine_factory)

    with pytest.raises(ValueError):
        harness.engine.fetch(0, 1)
    with pytest.raises(ValueError):
        harness.engine.fetch(1, 1, byte_limit=0)


def test_incomplete_fetch_drops_connection(engine_factory):
    harness = _selected(engine_factory, lines("* 1 FETCH (BODY[TEXT] {100}", "partial"))

    with pytest.raises(IncompleteResponse) as excinfo:
        harness.engine.fetch(1, 1)

    assert excinfo.value.lines == ["* 1 FETCH (BODY[TEXT] {100}", "partial"]
    assert harness.engine.state.stage is ConnectionStage.DISCONNECTED
    assert harness.transport.closed
    harness.engine.logout()
    assert harness.engine.state.stage is ConnectionStage.DISCONNECTED


def test_search_sends_compiled_criteria(engine_factory):
    harness = _selected(engine_factory, lines("* SEARCH 4 9", "{tag} OK Search completed."))

    assert harness.engine.search({"seen": False, "largerThan": 2048}) == [4, 9]
    assert harness.transport.commands[-1] == "SEARCH UNSEEN LARGER 2048"


def test_uid_search_with_explicit_tag(engine_factory):
    harness = _selected(engine_factory, lines("* SEARCH 1001", "{tag} OK Search completed."))

    assert harness.engine.search({"all": True}, uid=True, tag="g21") == [1001]
    assert harness.transport.sent[-1] == "g21 UID SEARCH ALL\r\n"


def test_empty_search_sends_nothing(engine_factory):
    harness = _selected(engine_factory)
    sent = len(harness.transport.sent)

    with pytest.raises(EmptyCriteria):
        harness.engine.search({})

    assert len(harness.transport.sent) == sent


def test_namespaces_and_folders(engine_factory):
    harness = engine_factory(
        LOGIN_OK,
        lines('* NAMESPACE (("" "/")) NIL NIL', "{tag} OK Namespace completed."),
        lines('* LIST (\\HasNoChildren) "/" INBOX', '* LIST (\\Sent) "/" Sent', "{tag} OK List completed."),
    )
    harness.engine.connect()

    namespaces = harness.engine.namespaces()
    folders = harness.engine.list_folders()

    assert namespaces.personal == [("", "/")]
    assert [folder.name for folder in folders] == ["INBOX", "Sent"]
    assert harness.transport.commands[-1] == 'LIST "" "*"'


def test_check_returns_raw_lines(engine_factory):
    harness = _selected(engine_factory, lines("{tag} OK Check completed."))

    assert harness.engine.check() == ["T3 OK Check completed."]


def test_context_manager_logs_out(engine_factory):
    harness = engine_factory(LOGIN_OK, SELECT_OK, LOGOUT_OK)

    with harness.engine as engine:
        engine.select("INBOX")

    assert harness.transport.commands[-1] == "LOGOUT"
    assert harness.transport.closed
    assert harness.engine.state.stage is ConnectionStage.LOGGED_OUT
    with pytest.raises(NotConnected):
        harness.engine.search({"seen": True})


def test_config_defaults_come_from_runtime_config():
    config = ImapConfig(host="h", username="u", password="p")

    assert config.port == 993
    assert config.tag_prefix == "T"
    assert config.max_reads == 50
    assert config.read_size == 4096
    assert config.response_deadline is None


def test_explicit_config_values_win():
    config = ImapConfig(host="h", username="u", password="p", port=143, tls=False, tag_prefix="X")

    assert config.port == 143
    assert config.tls is False
    assert config.tag_prefix == "X"
