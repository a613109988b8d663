from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from .errors import DecodeError, UnsupportedFormatError
from .fences import (
    choose_backtick_fence,
    file_heading,
    is_fence_close,
    parse_fence_open,
    parse_file_heading,
    strip_outer_fence,
)
from .formats import (
    DEFAULT_OUTPUT_FORMAT,
    ESCAPE_CHAR,
    FORMAT_JSON,
    FORMAT_MARKDOWN,
    FORMAT_RAW,
    JSON_FORMAT_VERSION,
    MARKER_PREFIX,
    NO_UPDATES_ERROR,
    OUTPUT_FORMATS,
)

# Content lines that would read as a marker get one extra leading backslash.
_ESC = re.escape(ESCAPE_CHAR)
_MARK = re.escape(MARKER_PREFIX)
_NEEDS_ESCAPE_RE = re.compile(rf"^(?:{_ESC})*{_MARK}")
_ESCAPED_RE = re.compile(rf"^(?:{_ESC})+{_MARK}")

_FENCE_INFO_BY_SUFFIX = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "yml": "yaml",
    "md": "markdown",
    "sh": "bash",
}

# Raw decoder states.
_SCANNING = "scanning"
_CAPTURING_PATH = "capturing-path"
_CAPTURING_BODY = "capturing-body"


@dataclass(frozen=True)
class DecodedFile:
    path: str
    content: str


@dataclass
class DecodedUpdate:
    """Files recovered from one model response, in response order."""

    files: list[DecodedFile]
    warnings: list[str] = field(default_factory=list)
    format: str = FORMAT_RAW

    def as_dict(self) -> dict[str, str]:
        return {f.path: f.content for f in self.files}


def validate_format(value: str) -> str:
    fmt = str(value).strip().lower()
    if fmt not in OUTPUT_FORMATS:
        raise UnsupportedFormatError(str(value), OUTPUT_FORMATS)
    return fmt


def marker_line(path: str) -> str:
    return f"{MARKER_PREFIX} {path}"


def parse_marker(line: str) -> str | None:
    """Return the path named by a marker line, or None for ordinary lines."""
    if not line.startswith(MARKER_PREFIX):
        return None
    return line[len(MARKER_PREFIX) :].strip()


def escape_line(line: str) -> str:
    return ESCAPE_CHAR + line if _NEEDS_ESCAPE_RE.match(line) else line


def unescape_line(line: str) -> str:
    return line[len(ESCAPE_CHAR) :] if _ESCAPED_RE.match(line) else line


def unescape_newlines(text: str) -> str:
    """Undo literal ``\\n`` sequences in output collapsed onto one line.

    Text that already has real line breaks is returned unchanged so that
    source containing ``"\\n"`` literals survives.
    """
    if "\n" in text.strip() or "\\n" not in text:
        return text
    return text.replace("\\r\\n", "\n").replace("\\n", "\n")


def _split_body_lines(text: str) -> list[str]:
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return lines


def _fence_info(path: str) -> str:
    suffix = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return _FENCE_INFO_BY_SUFFIX.get(suffix, suffix or "text")


def encode_raw(files: Iterable[tuple[str, str]]) -> str:
    out: list[str] = []
    for path, content in files:
        out.append(marker_line(path) + "\n")
        out.append("\n".join(escape_line(ln) for ln in content.split("\n")))
        out.append("\n")
    return "".join(out)


def encode_json(files: Iterable[tuple[str, str]]) -> str:
    payload = {
        "format": JSON_FORMAT_VERSION,
        "files": [{"path": path, "content": content} for path, content in files],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def encode_markdown(files: Iterable[tuple[str, str]]) -> str:
    blocks: list[str] = []
    for path, content in files:
        fence = choose_backtick_fence(content)
        blocks.append(
            f"{file_heading(path)}\n\n{fence}{_fence_info(path)}\n{content}\n{fence}\n"
        )
    return "\n".join(blocks)


_ENCODERS = {
    FORMAT_RAW: encode_raw,
    FORMAT_JSON: encode_json,
    FORMAT_MARKDOWN: encode_markdown,
}


def encode_files(
    files: Iterable[tuple[str, str]], fmt: str = DEFAULT_OUTPUT_FORMAT
) -> str:
    return _ENCODERS[validate_format(fmt)](list(files))


def _decode_raw(text: str, warnings: list[str]) -> list[DecodedFile]:
    out: list[DecodedFile] = []
    state = _SCANNING
    path = ""
    body: list[str] = []

    def _flush() -> None:
        if not path:
            warnings.append("skipped block: marker line without a path")
        elif state == _CAPTURING_PATH:
            warnings.append(f"skipped truncated block for {path}: no content")
        else:
            out.append(DecodedFile(path=path, content="\n".join(body)))

    for line in _split_body_lines(text):
        marker_path = parse_marker(line)
        if marker_path is not None:
            if state != _SCANNING:
                _flush()
            path = marker_path
            body = []
            state = _CAPTURING_PATH
            continue
        if state == _SCANNING:
            continue
        body.append(unescape_line(line))
        state = _CAPTURING_BODY

    if state != _SCANNING:
        _flush()
    return out


def _json_items(data: object, warnings: list[str]) -> list[object] | None:
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return None
    files = data.get("files")
    if isinstance(files, list):
        return files
    if "files" in data:
        warnings.append("skipped JSON payload: 'files' is not a list")
        return []
    if "path" in data or "content" in data:
        # A single {"path", "content"} object.
        return [data]
    flat = {k: v for k, v in data.items() if k != "format"}
    if not all(isinstance(v, str) for v in flat.values()):
        warnings.append("skipped JSON payload: not a mapping of path to content")
        return []
    return [{"path": k, "content": v} for k, v in flat.items()]


def _decode_json(text: str, warnings: list[str]) -> list[DecodedFile] | None:
    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    items = _json_items(data, warnings)
    if items is None:
        return None

    out: list[DecodedFile] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            warnings.append(f"skipped JSON entry #{idx}: not an object")
            continue
        path = item.get("path")
        content = item.get("content")
        if not isinstance(path, str) or not path.strip():
            warnings.append(f"skipped JSON entry #{idx}: missing path")
            continue
        if not isinstance(content, str):
            warnings.append(f"skipped JSON entry for {path}: content is not a string")
            continue
        out.append(DecodedFile(path=path.strip(), content=content))
    return out


def _looks_like_markdown(lines: list[str]) -> bool:
    # The first structural line decides; content may contain the other syntax.
    for line in lines:
        if parse_marker(line) is not None:
            return False
        if parse_file_heading(line) is not None:
            return True
    return False


def _decode_markdown(text: str, warnings: list[str]) -> list[DecodedFile] | None:
    lines = _split_body_lines(text)
    if not _looks_like_markdown(lines):
        return None

    out: list[DecodedFile] = []
    i = 0
    while i < len(lines):
        path = parse_file_heading(lines[i])
        i += 1
        if path is None:
            continue
        opened = None
        while i < len(lines) and parse_file_heading(lines[i]) is None:
            opened = parse_fence_open(lines[i])
            i += 1
            if opened is not None:
                break
        if opened is None:
            warnings.append(f"skipped block for {path}: no fenced content")
            continue
        fence = opened[0]
        buf: list[str] = []
        closed = False
        while i < len(lines):
            if is_fence_close(lines[i], fence):
                closed = True
                i += 1
                break
            buf.append(lines[i])
            i += 1
        if not closed:
            warnings.append(f"skipped truncated block for {path}: unclosed fence")
            continue
        out.append(DecodedFile(path=path, content="\n".join(buf)))
    return out


def dedupe_files(files: list[DecodedFile], warnings: list[str]) -> list[DecodedFile]:
    last: dict[str, DecodedFile] = {}
    for f in files:
        if f.path in last:
            warnings.append(f"duplicate block for {f.path}; keeping the last one")
            del last[f.path]
        last[f.path] = f
    return list(last.values())


def decode_output_text(text: str) -> DecodedUpdate:
    """Recover ``(path, content)`` pairs from model output.

    The format is detected: JSON first, then markdown file headings, then raw
    ``#@file:`` markers. Malformed blocks are dropped and described in
    ``warnings``; DecodeError is raised only when nothing usable remains.
    """
    warnings: list[str] = []
    unwrapped = strip_outer_fence(text)

    files = _decode_json(unwrapped, warnings)
    fmt = FORMAT_JSON
    if files is None:
        files = _decode_markdown(unescape_newlines(text), warnings)
        fmt = FORMAT_MARKDOWN
    if files is None:
        files = _decode_raw(unescape_newlines(unwrapped), warnings)
        fmt = FORMAT_RAW

    files = dedupe_files(files, warnings)
    if not files:
        raise DecodeError(NO_UPDATES_ERROR, warnings)
    return DecodedUpdate(files=files, warnings=warnings, format=fmt)
