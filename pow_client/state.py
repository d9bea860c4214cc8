from __future__ import annotations
from dataclasses import dataclass, field
from typing import List


def split_buffer(buffer: str) -> List[str]:
    """
    Lines contained in a status buffer.

    "" means no lines: the server omits an empty buffer, so a buffer holding a
    single empty line cannot be told apart from one holding nothing yet.
    """
    if not buffer:
        return []
    return buffer.split("\n")


@dataclass
class LineCursor:
    """
    Tracks which output lines of an http call were already delivered.

    The server only keeps the most recent lines of output, so a new snapshot
    is the previous one with old lines dropped from the front and new lines
    appended. advance() returns the lines that were appended.

    Two kinds of output are lost: identical lines that scroll out of the buffer
    between two polls, and an empty first line that is still the only line
    when the call finishes. An empty first line followed by more output is
    delivered with that output.
    """
    lines: List[str] = field(default_factory=list)
    delivered: int = 0

    def advance(self, buffer: str) -> List[str]:
        current = split_buffer(buffer)
        previous = self.lines
        self.lines = current

        overlap = _overlap(previous, current)
        fresh = current[overlap:]
        self.delivered += len(fresh)
        return fresh


def _overlap(previous: List[str], current: List[str]) -> int:
    """Length of the longest suffix of previous that is a prefix of current"""
    if current[:len(previous)] == previous:
        return len(previous)
    for k in range(min(len(previous), len(current)), 0, -1):
        if previous[-k:] == current[:k]:
            return k
    return 0
