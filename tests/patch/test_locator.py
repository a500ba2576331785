import pytest

from patchwise.patch import BlockLocator, Span, find_block, locate
from patchwise.patch.locator import (
    find_block_anchor_match,
    find_exact_match,
    find_fuzzy_substring_match,
    find_line_trimmed_match,
    find_normalised_text_match,
    find_shrinking_window_match,
)
from patchwise.settings import LocatorSettings


DOC = [
    "def alpha():",
    "    return 1",
    "",
    "def beta(x):",
    "    if x:",
    "        return 2",
    "    return 3",
    "",
    "def gamma():",
    "    pass",
]


def test_every_contiguous_subsequence_is_found_exactly():
    n = len(DOC)
    for i in range(n):
        for j in range(i, n):
            sub = DOC[i : j + 1]
            if not any(line.strip() for line in sub):
                continue
            span = locate(DOC, sub)
            # Blank-only or repeated content may legitimately match earlier
            expected = find_exact_match(DOC, sub, 1, n)
            assert span == expected
    assert locate(DOC, DOC[3:7]) == Span(4, 7)


def test_exact_match_is_case_insensitive():
    found = find_block(DOC, ["DEF BETA(X):", "    IF X:"])
    assert found is not None
    assert found.span == Span(4, 5)
    assert found.strategy == "exact"


def test_trimmed_match_ignores_surrounding_whitespace():
    target = ["if x:", "return 2", "  return 3  "]
    found = find_block(DOC, target)
    assert found is not None
    assert found.span == Span(5, 7)
    assert found.strategy == "trimmed"
    assert find_line_trimmed_match(DOC, target, 1, len(DOC)) == Span(5, 7)


def test_single_line_substring_match():
    assert find_fuzzy_substring_match(DOC, ["beta(x"], 1, len(DOC)) == Span(4, 4)
    found = find_block(DOC, ["beta(x"])
    assert found is not None and found.strategy == "substring"
    # Substring stage only handles one-line targets
    assert find_fuzzy_substring_match(DOC, ["beta", "x"], 1, len(DOC)) is None
    assert find_fuzzy_substring_match(DOC, ["   "], 1, len(DOC)) is None


def test_anchor_match_accepts_any_interior():
    target = ["def beta(x):", "    completely different", "    return 3"]
    assert find_block_anchor_match(DOC, target, 1, len(DOC)) is None
    target = ["def beta(x):", "    whatever", "    nope", "    return 3"]
    assert find_block_anchor_match(DOC, target, 1, len(DOC)) == Span(4, 7)
    found = find_block(DOC, target)
    assert found is not None and found.strategy == "anchor"


def test_anchor_match_needs_three_lines():
    assert find_block_anchor_match(DOC, ["def beta(x):", "    return 3"], 1, len(DOC)) is None


def test_shrinking_window_match_trims_target():
    target = ["# stale comment", "def gamma():", "    pass", "# trailing"]
    assert find_shrinking_window_match(DOC, target, 1, len(DOC)) == Span(9, 10)
    found = find_block(DOC, target)
    assert found is not None
    assert found.span == Span(9, 10)
    assert found.strategy == "shrinking"


def test_shrinking_window_stops_at_half_length():
    target = ["one", "two", "three", "four", "def gamma():", "six"]
    # Only one line of six would remain matchable, below the 50% floor
    assert find_shrinking_window_match(DOC, target, 1, len(DOC)) is None


def test_normalised_text_match_ignores_comments_and_layout():
    doc = ["x = compute(a,", "            b)  # first", "y = 2"]
    target = ["X = COMPUTE(a, b)"]
    assert find_normalised_text_match(doc, target, 1, len(doc)) == Span(1, 2)
    found = find_block(doc, target)
    assert found is not None
    assert found.span == Span(1, 2)
    assert found.strategy == "normalized"


def test_window_restricts_search():
    doc = ["a", "b", "a", "b"]
    assert locate(doc, ["a", "b"], 2) == Span(3, 4)
    assert locate(doc, ["a", "b"], 1, 3) == Span(1, 2)


def test_wrap_around_retries_before_start_hint():
    doc = ["target", "x", "y", "z"]
    found = find_block(doc, ["target"], 3)
    assert found is not None
    assert found.span == Span(1, 1)
    assert found.strategy == "exact+wrap"


def test_not_found_returns_none():
    assert locate(DOC, ["nothing like this"]) is None
    assert locate([], ["x"]) is None


def test_empty_target_is_rejected():
    with pytest.raises(ValueError):
        locate(DOC, [])


def test_locator_does_not_mutate_inputs():
    doc = list(DOC)
    target = ["IF X:"]
    locate(doc, target, 2, 8)
    assert doc == DOC
    assert target == ["IF X:"]


def test_locator_settings_shrink_ratio():
    target = ["zzz", "yyy", "def gamma():", "    pass"]
    strict = BlockLocator(LocatorSettings(shrink_min_ratio=1.0))
    lenient = BlockLocator(LocatorSettings(shrink_min_ratio=0.5))
    assert strict.locate(DOC, target) is None
    assert lenient.locate(DOC, target) == Span(9, 10)
