from __future__ import annotations

from editcrate.codec import decode_output_text, encode_files
from editcrate.fences import choose_backtick_fence, parse_fence_open, strip_outer_fence


def _mutate_fence_openers(text: str) -> str:
    return text.replace("```python\n", "```   python extra\n", 1)


def test_markdown_decode_tolerates_fence_whitespace_and_extra_tokens() -> None:
    text = encode_files([("a.py", "def a():\n    return 1\n")], "markdown")
    update = decode_output_text(_mutate_fence_openers(text))
    assert update.as_dict() == {"a.py": "def a():\n    return 1\n"}


def test_markdown_decode_accepts_other_heading_levels() -> None:
    text = "Here you go.\n\n## `a.txt`\n\n```text\nhi\n```\n"
    assert decode_output_text(text).as_dict() == {"a.txt": "hi"}


def test_parse_fence_open_variants() -> None:
    assert parse_fence_open("```") == ("```", "")
    assert parse_fence_open("  ````json  ") == ("````", "json")
    assert parse_fence_open("``` python extra") == ("```", "python")
    assert parse_fence_open("not a fence") is None


def test_choose_backtick_fence() -> None:
    assert choose_backtick_fence("plain") == "```"
    assert choose_backtick_fence("a ````` b") == "``````"


def test_strip_outer_fence_leaves_unfenced_text() -> None:
    assert strip_outer_fence("#@file: a\nx\n") == "#@file: a\nx\n"
    assert strip_outer_fence("\n```json\n{}\n```\n\n") == "{}\n"
