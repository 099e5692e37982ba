"""Glob patterns for topics, where wildcards never match a literal '/'."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_WILDCARDS = "wildcards are either regular `*` or recursive `**`"
_RECURSIVE = "recursive wildcards must form a single path component"
_RANGE = "invalid range pattern"


class PatternError(ValueError):
    """A topic pattern could not be parsed."""

    def __init__(self, pos: int, msg: str) -> None:
        super().__init__(pos, msg)
        self.pos = pos
        self.msg = msg

    def __str__(self) -> str:
        return f"Pattern syntax error near position {self.pos}: {self.msg}"


def _char_class(body: str, negated: bool) -> str:
    items = []
    i = 0
    while i < len(body):
        if i + 3 <= len(body) and body[i + 1] == "-":
            low, high = body[i], body[i + 2]
            if low <= high:
                items.append(f"{re.escape(low)}-{re.escape(high)}")
            i += 3
        else:
            items.append(re.escape(body[i]))
            i += 1
    inner = "".join(items)
    if negated:
        return f"[^/{inner}]"
    if not inner:
        return "(?!)"
    return f"(?!/)[{inner}]"


def _compile(pattern: str) -> re.Pattern[str]:
    parts = []
    i = 0
    n = len(pattern)
    while i < n:
        char = pattern[i]
        if char == "?":
            parts.append("[^/]")
            i += 1
        elif char == "*":
            start = i
            while i < n and pattern[i] == "*":
                i += 1
            count = i - start
            if count > 2:
                raise PatternError(start + 2, _WILDCARDS)
            if count == 1:
                parts.append("[^/]*")
                continue
            if start > 0 and pattern[start - 1] != "/":
                raise PatternError(start - 1, _RECURSIVE)
            if i == n:
                parts.append(".*")
            elif pattern[i] == "/":
                parts.append("(?:.*/)?")
                i += 1
            else:
                raise PatternError(i, _RECURSIVE)
        elif char == "[":
            body_start = i + 1
            negated = body_start < n and pattern[body_start] == "!"
            if negated:
                body_start += 1
            close = pattern.find("]", body_start + 1) if body_start < n else -1
            if close == -1:
                raise PatternError(i, _RANGE)
            parts.append(_char_class(pattern[body_start:close], negated))
            i = close + 1
        else:
            parts.append(re.escape(char))
            i += 1
    return re.compile("".join(parts), re.DOTALL)


@dataclass(frozen=True)
class TopicPattern:
    """A compiled topic glob: ``*`` and ``?`` stay within one path component,
    ``**`` spans any number of components, ``[...]`` and ``[!...]`` match
    character sets. Matching is case sensitive."""

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _compile(self.pattern))

    def __str__(self) -> str:
        return self.pattern

    def matches(self, topic: str) -> bool:
        return self._regex.fullmatch(topic) is not None