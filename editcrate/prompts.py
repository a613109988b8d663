from __future__ import annotations

from .config import END_OF_SEQUENCE
from .formats import MARKER_PREFIX

GENERATE_HEADER = f"""\
Below are files from a repository. Each file starts with a line
"{MARKER_PREFIX} <path>" followed by its full content. Lines inside a file that
would start with "{MARKER_PREFIX}" are escaped with a leading backslash.

"""


def build_generate_prompt(request: str, filemap_text: str) -> str:
    """Completion prompt: the files, the request, then room for the answer.

    The model answers with complete files in the same marker format and ends
    with the end-of-sequence word the backend uses as its stop sequence.
    """
    parts = [GENERATE_HEADER]
    if filemap_text:
        parts.append(filemap_text)
        if not filemap_text.endswith("\n"):
            parts.append("\n")
        parts.append("\n")
    parts.append(f"Request: {request.strip()}\n\n")
    parts.append(
        "Respond with the complete content of every file to create or change, "
        f'each starting with a "{MARKER_PREFIX} <path>" line. '
        f"Finish with a line containing only {END_OF_SEQUENCE}.\n\n"
    )
    return "".join(parts)


def build_edit_instruction(request: str) -> str:
    return (
        f"{request.strip()}\n"
        f'Keep every "{MARKER_PREFIX} <path>" line unchanged and return the '
        "full content of each file."
    )


def strip_end_of_sequence(text: str) -> str:
    """Drop a trailing end-of-sequence line for backends without stop words."""
    lines = text.rstrip().split("\n")
    if lines and lines[-1].strip() == END_OF_SEQUENCE:
        return "\n".join(lines[:-1]) + "\n"
    return text
