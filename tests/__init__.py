"""mailwire test suites: ``unit`` (fake transport) and ``e2e`` (CLI runner)."""
