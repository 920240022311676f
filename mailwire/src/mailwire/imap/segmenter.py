"""Split an accumulated reply into one block per untagged item."""
from __future__ import annotations

from typing import Iterable, List


UNTAGGED = "*"


def segment(lines: Iterable[str]) -> List[List[str]]:
    """Group ``lines`` into blocks that each start at an untagged ``*`` line.

    Lines seen before the first marker form a leading block of their own; an
    empty leading block is never emitted. Concatenating the returned blocks
    gives back ``lines`` unchanged.
    """

    blocks: List[List[str]] = []
    current: List[str] = []
    for line in lines:
        if line.startswith(UNTAGGED) and current:
            blocks.append(current)
            current = []
        current.append(line)
    if current:
        blocks.append(current)
    return blocks
