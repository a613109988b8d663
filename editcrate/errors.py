from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .writeback import WriteReport


class EditcrateError(Exception):
    """Base class for errors raised by editcrate."""


class ConfigError(EditcrateError, ValueError):
    pass


class FilemapIOError(EditcrateError, OSError):
    """A file could not be read or written; always names the offending path."""

    def __init__(self, path: str, cause: BaseException | str) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")

    def __str__(self) -> str:
        return f"{self.path}: {self.cause}"


class UnknownFilesetError(EditcrateError, LookupError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unknown fileset: {name!r}")

    def __str__(self) -> str:
        return f"unknown fileset: {self.name!r}"


class PathEscapeError(EditcrateError, ValueError):
    def __init__(self, path: str, reason: str = "path escapes the root") -> None:
        self.path = path
        super().__init__(f"Refusing {path!r}: {reason}")


class UnsupportedFormatError(EditcrateError, ValueError):
    def __init__(self, value: str, supported: tuple[str, ...]) -> None:
        self.value = value
        self.supported = supported
        super().__init__(
            f"unsupported output format {value!r} (expected one of: "
            + ", ".join(supported)
            + ")"
        )


class DecodeError(EditcrateError, ValueError):
    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        self.warnings = list(warnings or [])
        super().__init__(message)


class WriteBackError(FilemapIOError):
    """Write-back stopped at ``path``; ``report`` lists what was already written."""

    def __init__(
        self, path: str, cause: BaseException | str, report: WriteReport
    ) -> None:
        self.report = report
        super().__init__(path, cause)


class BackendError(EditcrateError, RuntimeError):
    pass
