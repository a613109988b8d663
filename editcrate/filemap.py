from __future__ import annotations

import warnings
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .codec import (
    DecodedFile,
    DecodedUpdate,
    decode_output_text,
    dedupe_files,
    encode_files,
    validate_format,
)
from .errors import DecodeError, FilemapIOError, PathEscapeError
from .formats import DEFAULT_OUTPUT_FORMAT, NO_UPDATES_ERROR
from .paths import normalize_relpath
from .resolver import resolve_paths
from .writeback import WriteReport, apply_updates

if TYPE_CHECKING:  # pragma: no cover
    from .config import Config


@dataclass
class FileEntry:
    path: str  # root-relative POSIX path
    original_content: str
    updated_content: str | None = None
    # True for files the model introduced; they do not exist on disk yet.
    is_new: bool = False

    @property
    def current_content(self) -> str:
        if self.updated_content is not None:
            return self.updated_content
        return self.original_content

    @property
    def is_updated(self) -> bool:
        return self.updated_content is not None


class Filemap:
    """Files of one invocation, keyed by root-relative path in load order."""

    def __init__(self, root: Path | str = ".", *, encoding_errors: str = "replace"):
        self.root = Path(root).resolve()
        self.encoding_errors = encoding_errors
        self._entries: dict[str, FileEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    @property
    def paths(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> list[FileEntry]:
        return list(self._entries.values())

    def get(self, path: str) -> FileEntry | None:
        return self._entries.get(path)

    def updated(self) -> list[FileEntry]:
        return [e for e in self._entries.values() if e.is_updated]

    @property
    def has_updates(self) -> bool:
        return any(e.is_updated for e in self._entries.values())

    def _read(self, rel: str) -> str:
        target = self.root / rel
        try:
            # Line endings are kept as stored.
            return target.read_bytes().decode("utf-8", errors=self.encoding_errors)
        except (OSError, UnicodeDecodeError) as e:
            raise FilemapIOError(rel, e) from e

    def load_files(self, paths: Iterable[str | Path]) -> None:
        """Read every path; the first failure aborts without changing the map."""
        staged: dict[str, str] = {}
        for raw in paths:
            rel = normalize_relpath(str(raw), self.root)
            staged[rel] = self._read(rel)
        for rel, text in staged.items():
            # Re-loading keeps the entry's position but refreshes its content.
            self._entries[rel] = FileEntry(path=rel, original_content=text)

    def load_filesets(self, names: Sequence[str], config: Config) -> None:
        self.load_files(resolve_paths([], names, config, self.root))

    def encode_to_input_text(self) -> str:
        return encode_files(
            ((e.path, e.original_content) for e in self._entries.values()),
            DEFAULT_OUTPUT_FORMAT,
        )

    def encode_to_input_text_full_paths(
        self, format: str = DEFAULT_OUTPUT_FORMAT
    ) -> str:
        """Render the current state (updates applied) keyed by absolute path."""
        fmt = validate_format(format)
        return encode_files(
            (
                ((self.root / e.path).as_posix(), e.current_content)
                for e in self._entries.values()
            ),
            fmt,
        )

    def decode_from_output_text(self, text: str) -> DecodedUpdate:
        """Store the model's file contents as updates.

        Unknown paths become new entries. Blocks that cannot be used are
        reported with RuntimeWarning; DecodeError is raised when none remain.
        """
        decoded = decode_output_text(text)
        issues = list(decoded.warnings)
        accepted: list[DecodedFile] = []
        for f in decoded.files:
            try:
                rel = normalize_relpath(f.path, self.root)
            except PathEscapeError as e:
                issues.append(f"skipped block for {f.path}: {e}")
                continue
            accepted.append(DecodedFile(path=rel, content=f.content))
        accepted = dedupe_files(accepted, issues)

        for msg in issues:
            warnings.warn(msg, RuntimeWarning, stacklevel=2)
        if not accepted:
            raise DecodeError(NO_UPDATES_ERROR, issues)

        for f in accepted:
            entry = self._entries.get(f.path)
            if entry is None:
                entry = FileEntry(path=f.path, original_content="", is_new=True)
                self._entries[f.path] = entry
            entry.updated_content = f.content
        return DecodedUpdate(files=accepted, warnings=issues, format=decoded.format)

    def write_updates_to_files(self, *, dry_run: bool = False) -> WriteReport:
        return apply_updates(self, dry_run=dry_run)
