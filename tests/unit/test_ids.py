"""Tests for command tag generation."""

import pytest

from mailwire.utils.ids import TagSequence


def test_tags_increase_per_sequence():
    tags = TagSequence("A")

    assert [tags.next() for _ in range(3)] == ["A1", "A2", "A3"]


def test_independent_sequences_do_not_share_state():
    first = TagSequence("g", start=21)
    second = TagSequence("g", start=21)

    assert next(first) == "g21"
    assert next(first) == "g22"
    assert next(second) == "g21"


@pytest.mark.parametrize("prefix", ["", "A 1", "A-", "*"])
def test_prefix_must_be_alphanumeric(prefix):
    with pytest.raises(ValueError):
        TagSequence(prefix)
