"""Split finalized assistant output into text and command-directive segments.

Two marker forms are recognised:

    [EXECUTE: "df -h"]        inline, quoted
    EXECUTE: df -h            on a line of its own (fenced or not)

The command text is passed on opaquely; nothing here decides whether it
is safe to run.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

_INLINE_RE = re.compile(r'\[EXECUTE:\s*"(?P<inline>.*?)"\]')
_LINE_RE = re.compile(r"^[ \t]*EXECUTE:[ \t]*(?P<line>\S[^\r\n]*?)[ \t]*$", re.MULTILINE)
_DIRECTIVE_RE = re.compile(f"{_INLINE_RE.pattern}|{_LINE_RE.pattern}", re.MULTILINE)


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class DirectiveSegment:
    command: str
    raw: str


Segment = Union[TextSegment, DirectiveSegment]


def parse_segments(content: str) -> tuple[Segment, ...]:
    """Parse *content* once into an ordered tuple of segments.

    Adjacent text is merged, and empty text segments are omitted.
    """
    segments: list[Segment] = []
    cursor = 0
    for match in _DIRECTIVE_RE.finditer(content or ""):
        command = match.group("inline")
        if command is None:
            command = match.group("line")
        command = (command or "").strip()
        if len(command) >= 2 and command[0] == command[-1] and command[0] in "\"'`":
            command = command[1:-1].strip()
        if not command:
            continue
        if match.start() > cursor:
            segments.append(TextSegment(content[cursor:match.start()]))
        segments.append(DirectiveSegment(command=command, raw=match.group(0)))
        cursor = match.end()
    if cursor < len(content or ""):
        segments.append(TextSegment(content[cursor:]))
    return tuple(segments)


def directives(segments: tuple[Segment, ...]) -> list[DirectiveSegment]:
    return [s for s in segments if isinstance(s, DirectiveSegment)]


def first_directive(content: str) -> DirectiveSegment | None:
    for segment in parse_segments(content):
        if isinstance(segment, DirectiveSegment):
            return segment
    return None
