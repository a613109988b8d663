from __future__ import annotations

JSON_FORMAT_VERSION = "editcrate.v1"

FORMAT_RAW = "raw"
FORMAT_JSON = "json"
FORMAT_MARKDOWN = "markdown"

OUTPUT_FORMATS: tuple[str, ...] = (FORMAT_RAW, FORMAT_JSON, FORMAT_MARKDOWN)
DEFAULT_OUTPUT_FORMAT = FORMAT_RAW

# A raw-format file block starts with a line "#@file: <path>".
MARKER_PREFIX = "#@file:"
ESCAPE_CHAR = "\\"

NO_UPDATES_ERROR = "no valid updates found"
