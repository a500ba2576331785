"""
Contracts for the editor host the review core runs inside.

The core reads and writes file content through a ContentAccessor, asks a
DiagnosticsProvider for an issue count after edits land, and draws review state
on a ReviewSurface. Hosts implement these; the in-memory and filesystem versions
here back the CLI and the tests.
"""

from __future__ import annotations

import pathlib
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from patchwise.patch.text import join_content, split_content

if TYPE_CHECKING:
    from patchwise.review.session import ReviewState


class PathEscapeError(ValueError):
    pass


class ContentAccessor(ABC):
    @abstractmethod
    def read(self, path: str) -> Optional[List[str]]:
        """Current lines of path, or None if it does not exist."""
        ...

    @abstractmethod
    def write(self, path: str, lines: Sequence[str]) -> None: ...

    def exists(self, path: str) -> bool:
        return self.read(path) is not None


class FileSystemContentAccessor(ContentAccessor):
    """
    File-backed accessor confined to base_path. Remembers whether each file ended
    with a newline so writes keep it.
    """

    def __init__(self, base_path: pathlib.Path, ensure_dir: bool = True):
        self._base_path = base_path
        self._ensure_dir = ensure_dir
        self._eol: Dict[str, bool] = {}

    def _resolve_safe_path(self, rel: str) -> pathlib.Path:
        if rel.startswith("/") or rel.startswith("~"):
            raise PathEscapeError(f"Absolute paths are not allowed: {rel}")
        abs_path = (self._base_path / rel).resolve()
        base_resolved = self._base_path.resolve()
        if abs_path == base_resolved or base_resolved in abs_path.parents:
            return abs_path
        raise PathEscapeError(f"Path escapes project root: {rel}")

    def read(self, path: str) -> Optional[List[str]]:
        p = self._resolve_safe_path(path)
        if not p.is_file():
            return None
        with p.open("rt", encoding="utf-8", newline="") as fh:
            lines, had_eol = split_content(fh.read())
        self._eol[path] = had_eol
        return lines

    def write(self, path: str, lines: Sequence[str]) -> None:
        p = self._resolve_safe_path(path)
        if self._ensure_dir:
            p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("wt", encoding="utf-8", newline="") as fh:
            fh.write(join_content(lines, eol=self._eol.get(path, True)))


class BufferFirstContentAccessor(ContentAccessor):
    """
    Prefers an open in-memory buffer over the file on disk. Writes update the
    buffer and, when a backing accessor is present, persist through it.
    """

    def __init__(self, backing: Optional[ContentAccessor] = None) -> None:
        self._backing = backing
        self._buffers: Dict[str, List[str]] = {}

    def open_buffer(self, path: str, lines: Sequence[str]) -> None:
        self._buffers[path] = list(lines)

    def close_buffer(self, path: str) -> None:
        self._buffers.pop(path, None)

    def buffer(self, path: str) -> Optional[List[str]]:
        lines = self._buffers.get(path)
        return list(lines) if lines is not None else None

    def read(self, path: str) -> Optional[List[str]]:
        if path in self._buffers:
            return list(self._buffers[path])
        if self._backing is not None:
            return self._backing.read(path)
        return None

    def write(self, path: str, lines: Sequence[str]) -> None:
        if self._backing is not None:
            self._backing.write(path, lines)
        if path in self._buffers or self._backing is None:
            self._buffers[path] = list(lines)


class DiagnosticsProvider(ABC):
    @abstractmethod
    async def count(self, path: str, lines: Sequence[str]) -> int:
        """Number of issues (e.g. linter diagnostics) for the given content."""
        ...


class StaticDiagnostics(DiagnosticsProvider):
    """Returns a fixed count; for hosts without a diagnostics source."""

    def __init__(self, value: int = 0) -> None:
        self.value = value
        self.calls: List[Tuple[str, int]] = []

    async def count(self, path: str, lines: Sequence[str]) -> int:
        self.calls.append((path, len(lines)))
        return self.value


class ReviewSurface(ABC):
    """Where a host draws a review in progress."""

    @abstractmethod
    def render(self, state: "ReviewState") -> None:
        """
        Redraw: mark each pending hunk's new_range as incoming and show its
        old_lines as non-live annotations below it.
        """
        ...

    @abstractmethod
    def focus(self, line: int) -> None:
        """Move the reviewer's cursor to a 1-based line."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove all review decorations."""
        ...
