from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class EditStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    SKIPPED_ALREADY_APPLIED = "skipped_already_applied"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Span:
    """
    1-based inclusive line range. An empty span (end_line == start_line - 1)
    denotes an insertion point before start_line.
    """

    start_line: int
    end_line: int

    @property
    def length(self) -> int:
        return max(0, self.end_line - self.start_line + 1)

    @property
    def is_empty(self) -> bool:
        return self.end_line < self.start_line

    def overlaps(self, other: "Span") -> bool:
        return not (other.end_line < self.start_line or self.end_line < other.start_line)

    def shifted(self, delta: int) -> "Span":
        return Span(self.start_line + delta, self.end_line + delta)


@dataclass(frozen=True)
class Match:
    span: Span
    # Name of the locator stage that produced this span
    strategy: str


@dataclass
class EditOperation:
    old_block: List[str] = field(default_factory=list)
    new_block: List[str] = field(default_factory=list)
    status: EditStatus = EditStatus.PENDING
    # 1-based position in the batch it arrived in
    index: int = 0

    @property
    def is_insertion(self) -> bool:
        return not self.old_block


@dataclass
class EditResult:
    index: int
    status: EditStatus
    span: Optional[Span] = None
    strategy: Optional[str] = None
    # Quoted old/new text for unresolved edits
    preview: Optional[str] = None


@dataclass
class PatchResult:
    new_content: List[str]
    results: List[EditResult]
    applied_count: int
    skipped_count: int
    unresolved_count: int
    pass_count: int
    diff: str
    diff_hash: str
    message: str
    diagnostics_count: Optional[int] = None

    @property
    def changed(self) -> bool:
        return self.applied_count > 0


@dataclass
class PatchError:
    msg: str
    line: Optional[int] = None
    hint: Optional[str] = None
    filename: Optional[str] = None


class EditDecodeError(ValueError):
    """A malformed edit in a batch; the whole batch is rejected."""

    def __init__(self, index: int, msg: str) -> None:
        super().__init__(f"Edit {index}: {msg}")
        self.index = index
        self.msg = msg
