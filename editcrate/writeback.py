from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import PathEscapeError, WriteBackError
from .paths import ensure_parent_dir, safe_join

if TYPE_CHECKING:  # pragma: no cover
    from .filemap import Filemap


@dataclass
class WriteReport:
    written: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    # Updated entries never attempted because an earlier write failed.
    pending: list[str] = field(default_factory=list)
    # Entries without updates; left untouched.
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def atomic_write_text(target: Path, text: str) -> None:
    """Write through a sibling temp file and ``os.replace`` it into place."""
    ensure_parent_dir(target)
    fd, tmp_name = tempfile.mkstemp(
        dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        if target.exists():
            shutil.copymode(target, tmp)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def apply_updates(filemap: Filemap, *, dry_run: bool = False) -> WriteReport:
    """Write every updated entry in load order, stopping at the first failure.

    Files written before a failure stay written; WriteBackError carries the
    report so callers can tell which ones.
    """
    report = WriteReport()
    entries = filemap.entries()
    for idx, entry in enumerate(entries):
        if entry.updated_content is None:
            report.skipped.append(entry.path)
            continue
        try:
            target = safe_join(filemap.root, entry.path)
            if not dry_run:
                atomic_write_text(target, entry.updated_content)
        except (OSError, UnicodeError, PathEscapeError) as e:
            report.failed.append(entry.path)
            report.pending.extend(
                e2.path for e2 in entries[idx + 1 :] if e2.updated_content is not None
            )
            report.skipped.extend(
                e2.path for e2 in entries[idx + 1 :] if e2.updated_content is None
            )
            raise WriteBackError(entry.path, e, report) from e
        report.written.append(entry.path)
    return report
