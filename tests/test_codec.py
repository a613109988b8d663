from __future__ import annotations

import json

import pytest

from editcrate.codec import (
    decode_output_text,
    encode_files,
    escape_line,
    unescape_line,
    unescape_newlines,
    validate_format,
)
from editcrate.errors import DecodeError, UnsupportedFormatError

TRICKY_FILES = [
    ("a.txt", "hello"),
    ("b.txt", "world\n"),
    ("empty.txt", ""),
    ("blank-edges.txt", "\n\nmiddle\n\n"),
    ("markers.txt", "x\n#@file: evil.txt\n\\#@file: already-escaped\n"),
    ("fences.md", "```python\nprint(1)\n```\n````\n"),
    ("headings.md", "### `not-a-file.txt`\n"),
    ("crlf.txt", "a\r\nb\r\n"),
    ("dir/with space.py", 'print("a\\nb")\n'),
]


def test_encode_two_files_in_order() -> None:
    text = encode_files([("a.txt", "hello"), ("b.txt", "world")])
    assert text == "#@file: a.txt\nhello\n#@file: b.txt\nworld\n"


def test_decode_concrete_response() -> None:
    update = decode_output_text("#@file: a.txt\ngoodbye\n#@file: b.txt\nworld\n")
    assert update.as_dict() == {"a.txt": "goodbye", "b.txt": "world"}
    assert update.format == "raw"
    assert update.warnings == []


@pytest.mark.parametrize("fmt", ["raw", "json", "markdown"])
def test_roundtrip_preserves_content(fmt: str) -> None:
    update = decode_output_text(encode_files(TRICKY_FILES, fmt))
    assert [(f.path, f.content) for f in update.files] == TRICKY_FILES
    assert update.format == fmt


def test_marker_lines_in_content_are_escaped() -> None:
    assert escape_line("#@file: x") == "\\#@file: x"
    assert escape_line("\\#@file: x") == "\\\\#@file: x"
    assert escape_line("  #@file: x") == "  #@file: x"
    assert unescape_line("\\\\#@file: x") == "\\#@file: x"
    assert unescape_line("\\n") == "\\n"

    text = encode_files([("a.txt", "#@file: b.txt\n")])
    assert text.splitlines()[1] == "\\#@file: b.txt"
    assert decode_output_text(text).as_dict() == {"a.txt": "#@file: b.txt\n"}


def test_empty_body_line_is_an_empty_update() -> None:
    update = decode_output_text("#@file: a.txt\n\n#@file: b.txt\nkept\n")
    assert update.as_dict() == {"a.txt": "", "b.txt": "kept"}


def test_truncated_block_is_skipped_with_warning() -> None:
    update = decode_output_text("#@file: a.txt\nnew a\n#@file: b.txt")
    assert update.as_dict() == {"a.txt": "new a"}
    assert any("truncated" in w and "b.txt" in w for w in update.warnings)


def test_marker_without_path_is_skipped() -> None:
    update = decode_output_text("#@file:\norphan\n#@file: a.txt\nok\n")
    assert update.as_dict() == {"a.txt": "ok"}
    assert any("without a path" in w for w in update.warnings)


def test_preamble_before_first_marker_is_ignored() -> None:
    update = decode_output_text("Sure, here are the files:\n#@file: a.txt\nhi\n")
    assert update.as_dict() == {"a.txt": "hi"}


def test_no_markers_raises_decode_error() -> None:
    with pytest.raises(DecodeError) as exc:
        decode_output_text("I could not find anything to change.")
    assert str(exc.value) == "no valid updates found"


def test_only_truncated_blocks_raise_with_warnings() -> None:
    with pytest.raises(DecodeError) as exc:
        decode_output_text("#@file: a.txt\n#@file: b.txt\n")
    assert len(exc.value.warnings) == 2


def test_duplicate_blocks_keep_the_last_one() -> None:
    update = decode_output_text("#@file: a.txt\none\n#@file: a.txt\ntwo\n")
    assert update.as_dict() == {"a.txt": "two"}
    assert any("duplicate" in w for w in update.warnings)


def test_collapsed_output_with_literal_newlines_is_unescaped() -> None:
    update = decode_output_text("#@file: a.txt\\nline1\\nline2\\n")
    assert update.as_dict() == {"a.txt": "line1\nline2"}


def test_literal_newline_escapes_survive_in_multiline_output() -> None:
    text = '#@file: a.py\nprint("a\\nb")\n'
    assert unescape_newlines(text) == text
    assert decode_output_text(text).as_dict() == {"a.py": 'print("a\\nb")'}


def test_raw_response_wrapped_in_code_fence() -> None:
    update = decode_output_text("```\n#@file: a.txt\nhi\n```\n")
    assert update.as_dict() == {"a.txt": "hi"}


def test_json_response_variants() -> None:
    listed = json.dumps(
        {
            "files": [
                {"path": "a.txt", "content": "x"},
                {"path": "", "content": "y"},
                {"path": "c.txt", "content": 3},
            ]
        }
    )
    update = decode_output_text(listed)
    assert update.as_dict() == {"a.txt": "x"}
    assert len(update.warnings) == 2

    flat = decode_output_text('```json\n{"a.txt": "hi", "b.txt": "there"}\n```')
    assert flat.as_dict() == {"a.txt": "hi", "b.txt": "there"}
    assert flat.format == "json"


def test_markdown_unclosed_fence_is_skipped() -> None:
    text = "### `a.txt`\n```\nhi\n```\n### `b.txt`\n```\ncut off"
    update = decode_output_text(text)
    assert update.as_dict() == {"a.txt": "hi"}
    assert any("unclosed fence" in w for w in update.warnings)


def test_markdown_heading_without_fence_is_skipped() -> None:
    text = "### `a.txt`\nno fence here\n### `b.txt`\n```\nok\n```\n"
    update = decode_output_text(text)
    assert update.as_dict() == {"b.txt": "ok"}


def test_markdown_fence_outgrows_backticks_in_content() -> None:
    text = encode_files([("a.md", "```\ncode\n```\n")], "markdown")
    assert "````markdown\n" in text


def test_validate_format() -> None:
    assert validate_format(" JSON ") == "json"
    with pytest.raises(UnsupportedFormatError) as exc:
        validate_format("yaml")
    assert exc.value.value == "yaml"
    with pytest.raises(UnsupportedFormatError):
        encode_files([("a.txt", "x")], "xml")


def test_single_json_object_is_one_file() -> None:
    update = decode_output_text('{"path": "a.txt", "content": "new"}')
    assert update.as_dict() == {"a.txt": "new"}
    assert update.format == "json"


def test_flat_json_with_non_string_values_is_rejected() -> None:
    with pytest.raises(DecodeError) as exc:
        decode_output_text('{"a.txt": "x", "meta": {"model": "m"}}')
    assert any("not a mapping of path to content" in w for w in exc.value.warnings)
