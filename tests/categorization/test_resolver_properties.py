"""Unit and property-based tests for category resolution.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import string
from typing import List

import pytest
from hypothesis import given, settings, strategies as st

from src.categorization.classifier.resolver import (
    SIMILARITY_THRESHOLD,
    calculate_similarity,
    normalize_name,
    resolve_category,
)
from src.categorization.state.models import Category


def _categories(*names: str) -> List[Category]:
    return [Category(id=i, organization_id=1, name=name) for i, name in enumerate(names, 1)]


# =============================================================================
# calculate_similarity
# =============================================================================


def test_equal_after_normalization_scores_one():
    assert calculate_similarity("  BUG FIX ", "bug fix") == 1.0


def test_substring_scores_point_eight():
    assert calculate_similarity("Bug", "Bug Fix") == 0.8
    assert calculate_similarity("Bug Fix Release", "bug fix") == 0.8


def test_character_membership_ratio():
    # b,u,g,f,i,x all occur in "bug fix": 6 / 7
    assert calculate_similarity("Bugfix", "Bug Fix") == pytest.approx(6 / 7)


def test_membership_is_not_multiset_aware():
    # every "a" counts, though the candidate holds a single "a"
    assert calculate_similarity("aaaa", "abcd") == 1.0


# =============================================================================
# resolve_category
# =============================================================================


def test_exact_match_is_case_and_whitespace_insensitive():
    categories = _categories("Bug Fix", "Feature")

    assert resolve_category("  bug FIX ", categories).name == "Bug Fix"


def test_exact_pass_takes_first_in_list_order():
    categories = [
        Category(id=1, organization_id=1, name="Feature"),
        Category(id=2, organization_id=None, name="feature", is_default=True),
    ]

    assert resolve_category("FEATURE", categories).id == 1


def test_exact_match_beats_earlier_fuzzy_candidate():
    categories = _categories("Bug Fixes", "Bug Fix")

    assert resolve_category("bug fix", categories).id == 2


def test_bugfix_resolves_fuzzily_to_bug_fix():
    categories = _categories("Bug Fix")

    assert resolve_category("Bugfix", categories).name == "Bug Fix"


def test_score_exactly_at_threshold_is_rejected():
    candidate = "a" * 100
    suggested = "a" * 60 + "z" * 40
    assert calculate_similarity(suggested, candidate) == SIMILARITY_THRESHOLD

    assert resolve_category(suggested, _categories(candidate)) is None


def test_score_just_above_threshold_is_accepted():
    candidate = "a" * 100
    suggested = "a" * 61 + "z" * 39
    assert calculate_similarity(suggested, candidate) == pytest.approx(0.61)

    assert resolve_category(suggested, _categories(candidate)).name == candidate


def test_highest_score_wins():
    # "featur" vs "Feature" is a substring (0.8); vs "Fixture" it is 5/7
    categories = _categories("Fixture", "Feature")

    assert resolve_category("featur", categories).name == "Feature"


def test_ties_keep_first_candidate():
    categories = _categories("Docs Update", "Docs Cleanup")

    assert resolve_category("docs", categories).name == "Docs Update"


def test_unrelated_suggestion_resolves_to_none():
    assert resolve_category("Security", _categories("Bug Fix", "Feature")) is None


def test_blank_suggestion_resolves_to_none():
    assert resolve_category("   ", _categories("Bug Fix")) is None


def test_empty_category_list_resolves_to_none():
    assert resolve_category("Bug Fix", []) is None


# =============================================================================
# Properties
# =============================================================================


names = st.text(
    alphabet=string.ascii_letters + string.digits + " -",
    min_size=1,
    max_size=24,
).filter(lambda s: s.strip())

category_lists = st.lists(names, min_size=1, max_size=8, unique_by=normalize_name)

case_transforms = st.sampled_from([str.upper, str.lower, str.title, str.swapcase, str])

padding = st.text(alphabet=" \t", max_size=3)


@settings(max_examples=100)
@given(
    category_names=category_lists,
    data=st.data(),
    transform=case_transforms,
    left=padding,
    right=padding,
)
def test_exact_match_invariance(category_names, data, transform, left, right):
    categories = _categories(*category_names)
    target = data.draw(st.sampled_from(categories))
    suggested = f"{left}{transform(target.name)}{right}"

    assert resolve_category(suggested, categories) is target


@settings(max_examples=100)
@given(suggested=names, category_names=category_lists)
def test_resolution_is_idempotent(suggested, category_names):
    categories = _categories(*category_names)

    assert resolve_category(suggested, categories) is resolve_category(
        suggested, categories
    )


@settings(max_examples=100)
@given(suggested=names, candidate=names)
def test_similarity_is_bounded(suggested, candidate):
    score = calculate_similarity(suggested, candidate)

    assert 0.0 <= score <= 1.0


@settings(max_examples=100)
@given(suggested=names, category_names=category_lists)
def test_resolved_category_is_exact_or_above_threshold(suggested, category_names):
    categories = _categories(*category_names)

    result = resolve_category(suggested, categories)

    if result is not None:
        exact = normalize_name(result.name) == normalize_name(suggested)
        assert exact or calculate_similarity(suggested, result.name) > SIMILARITY_THRESHOLD
