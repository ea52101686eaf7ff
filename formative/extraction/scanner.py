"""Balanced-delimiter scanner for structured values embedded in prose.

Models wrap their JSON in explanations, code fences and apologies. The
scanner walks the raw text with an explicit delimiter stack and yields each
balanced `{...}` or `[...]` span, in order of its opening position.

Inside a candidate, delimiters within double-quoted strings (including
backslash escapes) are ignored, so `{"a": "}"}` is one span. Outside a
candidate quotes are not tracked: prose quotes are not reliably paired.
"""

from typing import Iterator, NamedTuple, Optional

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}", "]"}


class Candidate(NamedTuple):
    start: int
    end: int  # exclusive
    text: str


def match_from(text: str, start: int) -> Optional[int]:
    """Find the end (exclusive) of the balanced span opening at `start`.

    Returns None if the span never closes or a closer does not match its
    opener.
    """
    if start >= len(text) or text[start] not in _OPENERS:
        return None

    stack: list[str] = []
    in_string = False
    escaped = False

    for pos in range(start, len(text)):
        ch = text[pos]

        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in _CLOSERS:
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return pos + 1

    return None


def iter_candidates(text: str) -> Iterator[Candidate]:
    """Yield every balanced span in `text`, ordered by opening position.

    Spans nested inside an earlier span are yielded too, after it, so a
    caller that rejects an outer span can still reach a valid inner one.
    """
    for start, ch in enumerate(text):
        if ch not in _OPENERS:
            continue
        end = match_from(text, start)
        if end is not None:
            yield Candidate(start, end, text[start:end])
