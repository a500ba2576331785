"""
Block locator: find where an approximately described block of lines lives in a
document.

Strategies run from strict to lenient and the first one that matches wins:

1. exact        every line equal, ignoring case
2. trimmed      every line equal after stripping surrounding whitespace
3. substring    single-line target found inside one document line
4. anchor       first and last lines of a 3+ line target match; interior ignored
5. shrinking    a 3+ line target trimmed from the top/bottom (down to a fraction
                of its length) matches with the trimmed rule
6. structural   the target parses to one syntax node that has a structural twin
                in the document (needs a SyntaxTreeProvider)
7. normalized   comment-free, whitespace-collapsed, lowercased text equal over a
                window whose height varies around the target's

If all fail inside [start_hint, end_hint] and start_hint > 1, the whole cascade
is retried over [1, start_hint - 1]. Returns None when nothing matched.
"""

from __future__ import annotations

import math
from typing import Callable, List, Optional, Sequence

from patchwise.logger import logger
from patchwise.settings import LocatorSettings

from .models import Match, Span
from .syntax import SyntaxTreeProvider, find_structural_match
from .text import normalize_code

Lines = Sequence[str]


def _candidate_starts(n_doc: int, n_target: int, start: int, end: int) -> range:
    # 1-based candidate first lines whose block fits inside [start, end]
    last = min(end, n_doc) - n_target + 1
    return range(max(1, start), last + 1)


def _match_with(
    doc: Lines,
    target: Lines,
    start: int,
    end: int,
    key: Callable[[str], str],
) -> Optional[Span]:
    m = len(target)
    needle = [key(t) for t in target]
    for i in _candidate_starts(len(doc), m, start, end):
        if all(key(doc[i - 1 + j]) == needle[j] for j in range(m)):
            return Span(i, i + m - 1)
    return None


def _casefold(s: str) -> str:
    return s.lower()


def _trimmed(s: str) -> str:
    return s.strip().lower()


def find_exact_match(doc: Lines, target: Lines, start: int, end: int) -> Optional[Span]:
    return _match_with(doc, target, start, end, _casefold)


def find_verbatim_match(doc: Lines, target: Lines, start: int, end: int) -> Optional[Span]:
    """Case-sensitive match ignoring only surrounding whitespace. Not a cascade stage."""
    return _match_with(doc, target, start, end, str.strip)


def find_line_trimmed_match(
    doc: Lines, target: Lines, start: int, end: int
) -> Optional[Span]:
    return _match_with(doc, target, start, end, _trimmed)


def find_fuzzy_substring_match(
    doc: Lines, target: Lines, start: int, end: int
) -> Optional[Span]:
    if len(target) != 1:
        return None
    needle = target[0].strip()
    if not needle:
        return None
    for i in range(max(1, start), min(end, len(doc)) + 1):
        if needle in doc[i - 1].strip():
            return Span(i, i)
    return None


def find_block_anchor_match(
    doc: Lines, target: Lines, start: int, end: int
) -> Optional[Span]:
    m = len(target)
    if m < 3:
        return None
    first = target[0].strip()
    last = target[-1].strip()
    for i in _candidate_starts(len(doc), m, start, end):
        if doc[i - 1].strip() == first and doc[i + m - 2].strip() == last:
            return Span(i, i + m - 1)
    return None


def find_shrinking_window_match(
    doc: Lines,
    target: Lines,
    start: int,
    end: int,
    min_ratio: float = 0.5,
) -> Optional[Span]:
    m = len(target)
    if m < 3:
        return None
    min_size = max(1, math.ceil(m * min_ratio))
    for size in range(m - 1, min_size - 1, -1):
        for top in range(0, m - size + 1):
            sub = target[top : top + size]
            if not any(line.strip() for line in sub):
                continue
            span = find_line_trimmed_match(doc, sub, start, end)
            if span is not None:
                return span
    return None


def find_normalised_text_match(
    doc: Lines,
    target: Lines,
    start: int,
    end: int,
    slack_ratio: float = 0.1,
    slack_lines: int = 5,
) -> Optional[Span]:
    needle = normalize_code("\n".join(target))
    if not needle:
        return None
    m = len(target)
    slack = int(m * slack_ratio) + slack_lines
    # Heights closest to the target's are tried first
    heights = sorted(range(max(1, m - slack), m + slack + 1), key=lambda h: (abs(h - m), h))
    last_line = min(end, len(doc))
    for i in range(max(1, start), last_line + 1):
        for h in heights:
            j = i + h - 1
            if j > last_line:
                continue
            if normalize_code("\n".join(doc[i - 1 : j])) == needle:
                return Span(i, j)
    return None


class BlockLocator:
    def __init__(
        self,
        settings: Optional[LocatorSettings] = None,
        syntax: Optional[SyntaxTreeProvider] = None,
        language: Optional[str] = None,
    ) -> None:
        self.settings = settings or LocatorSettings()
        self.syntax = syntax
        self.language = language

    def _cascade(self, doc: Lines, target: Lines, start: int, end: int) -> Optional[Match]:
        cfg = self.settings
        span = find_exact_match(doc, target, start, end)
        if span is not None:
            return Match(span, "exact")
        span = find_line_trimmed_match(doc, target, start, end)
        if span is not None:
            return Match(span, "trimmed")
        span = find_fuzzy_substring_match(doc, target, start, end)
        if span is not None:
            return Match(span, "substring")
        span = find_block_anchor_match(doc, target, start, end)
        if span is not None:
            return Match(span, "anchor")
        span = find_shrinking_window_match(
            doc, target, start, end, min_ratio=cfg.shrink_min_ratio
        )
        if span is not None:
            return Match(span, "shrinking")
        if cfg.enable_structural and self.syntax is not None and self.language:
            span = find_structural_match(
                self.syntax, self.language, doc, target, start, end
            )
            if span is not None:
                return Match(span, "structural")
        span = find_normalised_text_match(
            doc,
            target,
            start,
            end,
            slack_ratio=cfg.normalized_slack_ratio,
            slack_lines=cfg.normalized_slack_lines,
        )
        if span is not None:
            return Match(span, "normalized")
        return None

    def find(
        self,
        document_lines: Lines,
        target_lines: Lines,
        start_hint: Optional[int] = None,
        end_hint: Optional[int] = None,
    ) -> Optional[Match]:
        if not target_lines:
            raise ValueError("target_lines must not be empty; insertions have no anchor")
        n = len(document_lines)
        start = max(1, start_hint or 1)
        end = min(n, end_hint or n)

        found = self._cascade(document_lines, target_lines, start, end)
        if found is None and start > 1:
            found = self._cascade(document_lines, target_lines, 1, start - 1)
            if found is not None:
                found = Match(found.span, f"{found.strategy}+wrap")

        if found is None:
            return None
        _log_match(found)
        return found

    def locate(
        self,
        document_lines: Lines,
        target_lines: Lines,
        start_hint: Optional[int] = None,
        end_hint: Optional[int] = None,
    ) -> Optional[Span]:
        found = self.find(document_lines, target_lines, start_hint, end_hint)
        return found.span if found is not None else None


def _log_match(found: Match) -> None:
    kwargs = dict(
        strategy=found.strategy,
        start=found.span.start_line,
        end=found.span.end_line,
    )
    base = found.strategy.split("+", 1)[0]
    if base == "structural":
        logger.info("block located", **kwargs)
    elif base == "normalized" or found.strategy.endswith("+wrap"):
        logger.warning("block located", **kwargs)
    else:
        logger.debug("block located", **kwargs)


_default_locator = BlockLocator()


def find_block(
    document_lines: Lines,
    target_lines: Lines,
    start_hint: Optional[int] = None,
    end_hint: Optional[int] = None,
) -> Optional[Match]:
    return _default_locator.find(document_lines, target_lines, start_hint, end_hint)


def locate(
    document_lines: Lines,
    target_lines: Lines,
    start_hint: Optional[int] = None,
    end_hint: Optional[int] = None,
) -> Optional[Span]:
    return _default_locator.locate(document_lines, target_lines, start_hint, end_hint)


__all__: List[str] = [
    "BlockLocator",
    "find_block",
    "locate",
    "find_exact_match",
    "find_verbatim_match",
    "find_line_trimmed_match",
    "find_fuzzy_substring_match",
    "find_block_anchor_match",
    "find_shrinking_window_match",
    "find_normalised_text_match",
]
