from __future__ import annotations

from .codec import DecodedFile, DecodedUpdate, decode_output_text, encode_files
from .config import Config, Fileset, load_config
from .errors import (
    DecodeError,
    EditcrateError,
    FilemapIOError,
    PathEscapeError,
    UnknownFilesetError,
    UnsupportedFormatError,
    WriteBackError,
)
from .filemap import FileEntry, Filemap
from .resolver import PathResolver, resolve_paths
from .writeback import WriteReport, apply_updates

__all__ = [
    "Config",
    "DecodeError",
    "DecodedFile",
    "DecodedUpdate",
    "EditcrateError",
    "FileEntry",
    "Filemap",
    "FilemapIOError",
    "Fileset",
    "PathEscapeError",
    "PathResolver",
    "UnknownFilesetError",
    "UnsupportedFormatError",
    "WriteBackError",
    "WriteReport",
    "apply_updates",
    "decode_output_text",
    "encode_files",
    "load_config",
    "resolve_paths",
]
