"""Domain models for the Neovim editing session."""

import os
from dataclasses import asdict, dataclass
from typing import Any


def title_from_path(path: str) -> str:
    """Return the last path segment, or the path itself when it is empty."""
    if not path:
        return path
    return path.split(os.sep)[-1]


@dataclass(frozen=True)
class BufferInfo:
    """An open buffer."""

    handle: int
    title: str
    path: str
    loaded: bool
    changed: bool
    line_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "title": self.title,
            "name": self.path,
            "loaded": self.loaded,
            "changed": self.changed,
            "line_count": self.line_count,
        }


@dataclass(frozen=True)
class WindowInfo:
    """A window together with a fresh snapshot of the buffer it shows."""

    handle: int
    buffer: BufferInfo
    width: int
    height: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "buffer": self.buffer.to_dict(),
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class CursorPosition:
    """A 1-based cursor position."""

    line: int
    column: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SearchMatch:
    """A pattern match; ``match_text`` is the whole line containing it."""

    line: int
    column: int
    match_text: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Diagnostic:
    """A diagnostic reported by ``vim.diagnostic``, converted to 1-based positions."""

    buffer: int
    line: int
    column: int
    severity: str
    message: str
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
