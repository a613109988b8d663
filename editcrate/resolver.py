from __future__ import annotations

import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pathspec

from .config import Config, Fileset
from .errors import UnknownFilesetError
from .paths import normalize_relpath

DEFAULT_EXCLUDES = [
    "**/__pycache__/**",
    "**/*.pyc",
    "**/.git/**",
    "**/.venv/**",
    "**/venv/**",
    "**/.tox/**",
    "**/.pytest_cache/**",
    "**/node_modules/**",
]

_GLOB_CHARS = frozenset("*?[")


def is_glob(pattern: str) -> bool:
    return any(ch in _GLOB_CHARS for ch in pattern)


def _load_ignore_lines(root: Path, filename: str) -> list[str]:
    p = root / filename
    if not p.exists():
        return []
    return p.read_text(encoding="utf-8", errors="replace").splitlines()


def _load_combined_ignore(root: Path, *, respect_gitignore: bool) -> pathspec.PathSpec:
    # Later patterns take precedence, so the tool-specific file goes last.
    lines: list[str] = []
    if respect_gitignore:
        lines.extend(_load_ignore_lines(root, ".gitignore"))
    lines.extend(_load_ignore_lines(root, ".editcrateignore"))
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def expand_pattern(
    pattern: str, root: Path, *, respect_gitignore: bool = True
) -> list[str]:
    """Return the sorted root-relative files matching a gitwildmatch pattern."""
    root = root.resolve()
    spec = pathspec.PathSpec.from_lines("gitwildmatch", [pattern])
    exc = pathspec.PathSpec.from_lines("gitwildmatch", DEFAULT_EXCLUDES)
    ignore = _load_combined_ignore(root, respect_gitignore=respect_gitignore)

    out: list[str] = []
    for p in root.rglob("*"):
        if not p.is_file():
            continue
        rel_s = p.relative_to(root).as_posix()
        if exc.match_file(rel_s) or ignore.match_file(rel_s):
            continue
        if spec.match_file(rel_s):
            out.append(rel_s)
    out.sort()
    return out


@dataclass(frozen=True)
class PathResolver:
    """Turns explicit file names and fileset names into root-relative paths."""

    root: Path
    config: Config

    def fileset(self, name: str) -> Fileset:
        fs = self.config.find_fileset(name)
        if fs is None:
            raise UnknownFilesetError(name)
        return fs

    def fileset_paths(self, name: str) -> list[str]:
        out: list[str] = []
        for entry in self.fileset(name).files:
            if not is_glob(entry):
                out.append(normalize_relpath(entry, self.root))
                continue
            matched = expand_pattern(
                entry, self.root, respect_gitignore=self.config.respect_gitignore
            )
            if not matched:
                warnings.warn(
                    f"Fileset {name!r}: pattern {entry!r} matched no files",
                    RuntimeWarning,
                    stacklevel=2,
                )
            out.extend(matched)
        return out

    def resolve(
        self,
        explicit_files: Sequence[str | Path] = (),
        fileset_names: Sequence[str] = (),
    ) -> list[str]:
        """Order-preserving, deduplicated union of explicit files and filesets.

        Raises UnknownFilesetError for an unconfigured fileset name and
        PathEscapeError for any path leaving the root.
        """
        out: list[str] = []
        seen: set[str] = set()

        def _add(rel: str) -> None:
            if rel not in seen:
                seen.add(rel)
                out.append(rel)

        for raw in explicit_files:
            if not str(raw).strip():
                continue
            _add(normalize_relpath(str(raw), self.root))
        for name in fileset_names:
            if not name:
                continue
            for rel in self.fileset_paths(name):
                _add(rel)
        return out


def resolve_paths(
    explicit_files: Sequence[str | Path],
    fileset_names: Sequence[str],
    config: Config,
    root: Path,
) -> list[str]:
    return PathResolver(root=root, config=config).resolve(
        explicit_files, fileset_names
    )
