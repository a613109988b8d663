from __future__ import annotations

import re

_BACKTICK_RUN_RE = re.compile(r"`+")
_FENCE_OPEN_RE = re.compile(r"^(?P<fence>`{3,})[ \t]*(?P<info>[^`\s]*)(?:[ \t]+.*)?$")
_FILE_HEADING_RE = re.compile(r"^#{2,4}[ \t]+`(?P<path>[^`]+)`[ \t]*$")


def longest_backtick_run(text: str) -> int:
    return max((len(m.group(0)) for m in _BACKTICK_RUN_RE.finditer(text)), default=0)


def choose_backtick_fence(text: str, *, min_len: int = 3) -> str:
    return "`" * max(min_len, longest_backtick_run(text) + 1)


def parse_fence_open(line: str) -> tuple[str, str] | None:
    """Return ``(fence, info)`` for an opening fence line; info may be empty."""
    m = _FENCE_OPEN_RE.match(line.strip())
    if not m:
        return None
    return m.group("fence"), m.group("info")


def is_fence_close(line: str, fence: str) -> bool:
    return line.strip() == fence


def parse_file_heading(line: str) -> str | None:
    m = _FILE_HEADING_RE.match(line.rstrip("\n"))
    if not m:
        return None
    return m.group("path").strip()


def file_heading(path: str) -> str:
    return f"### `{path}`"


def strip_outer_fence(text: str) -> str:
    """Drop a code fence wrapping the whole text, as chat models often add."""
    lines = text.split("\n")
    while lines and not lines[-1].strip():
        lines.pop()
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if len(lines) - start < 2:
        return text
    opened = parse_fence_open(lines[start])
    if opened is None or not is_fence_close(lines[-1], opened[0]):
        return text
    return "\n".join(lines[start + 1 : -1]) + "\n"
