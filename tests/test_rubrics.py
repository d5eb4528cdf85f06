from __future__ import annotations

import pytest

from admissions_core.rubrics import curriculum_context, grade_label, is_american, language_style


@pytest.mark.parametrize("text,expected", [
    ("US", True),
    ("en-US", True),
    ("US Common Core", True),
    ("American curriculum", True),
    ("Australian Curriculum", False),
    ("en-AU", False),
    ("Russian", False),
    ("", False),
    (None, False),
])
def test_is_american_matches_whole_tokens(text, expected):
    assert is_american(text) is expected


def test_australian_programme_is_not_given_the_american_register():
    assert curriculum_context("Australian Curriculum").startswith("an international school")
    assert curriculum_context("US Common Core").startswith("an American-curriculum school")
    assert curriculum_context("IGCSE").startswith("a British-curriculum school")


@pytest.mark.parametrize("locale,style", [
    ("en-US", "American English"),
    ("en_US", "American English"),
    ("en-AU", "British English"),
    ("AUS", "British English"),
    (None, "British English"),
])
def test_language_style(locale, style):
    assert language_style(locale) == style


def test_grade_label_counts_years_for_british_programmes():
    assert grade_label(10, "IGCSE") == "Year 11"
    assert grade_label(10, "US Common Core") == "Grade 10"
