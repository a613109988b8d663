from __future__ import annotations

import posixpath
import re
from pathlib import Path, PurePosixPath

from .errors import PathEscapeError

_WINDOWS_ABS_RE = re.compile(r"^[A-Za-z]:[\\/]")


def is_absolute_like(path: str) -> bool:
    return (
        path.startswith("/")
        or bool(_WINDOWS_ABS_RE.match(path))
        or Path(path).is_absolute()
    )


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def normalize_relpath(path: str, root: Path) -> str:
    """Return ``path`` as a POSIX path relative to ``root``.

    Absolute paths are accepted only when they point inside the root. Any
    ``..`` segment that survives normalization, or a symlink that resolves
    outside the root, raises PathEscapeError.
    """
    raw = path.strip()
    if not raw:
        raise PathEscapeError(path, "empty path")

    root_resolved = root.resolve()
    if is_absolute_like(raw):
        candidate = Path(raw).resolve()
        if not _is_within(candidate, root_resolved):
            raise PathEscapeError(path, "absolute path outside the root")
        raw = candidate.relative_to(root_resolved).as_posix()

    # Leading separators left at this point are relative to the root.
    normalized = posixpath.normpath(raw.replace("\\", "/").lstrip("/"))
    if normalized in {"", "."}:
        raise PathEscapeError(path, "path names the root itself")
    if any(part == ".." for part in PurePosixPath(normalized).parts):
        raise PathEscapeError(path, "path traversal outside the root")

    target = (root_resolved / normalized).resolve()
    if not _is_within(target, root_resolved):
        raise PathEscapeError(path, "resolves outside the root")
    return normalized


def safe_join(root: Path, relpath: str) -> Path:
    root_resolved = root.resolve()
    return root_resolved / normalize_relpath(relpath, root_resolved)


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
