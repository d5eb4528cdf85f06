from __future__ import annotations

import pytest

from admissions_core.audit import AuditTrail
from admissions_core.errors import NoAnswerMatch
from admissions_core.mcq import construct_scores, domain_scores, infer_letter, pct, resolve_letter, round1, score_mcq
from admissions_core.types import AnswerKey

from tests.conftest import build_answer_keys, mcq_answers


def _capital_key() -> AnswerKey:
    return AnswerKey(label="G10_EN_Q1", domain="english", construct="Knowledge", question_type="MCQ",
                     question_number=1, question_text="Capital of France?", correct_answer="B",
                     option_a="London", option_b="paris", option_c="Rome", option_d="Madrid")


@pytest.mark.parametrize("text,letter,strategy", [
    ("paris", "B", "exact"),
    ("  PARIS ", "B", "exact"),
    ("B) Paris", "B", "contains"),
    ("C) Lisbon", "C", "leading_letter"),
    ("d", "D", "single_letter"),
])
def test_infer_letter_strategies(text, letter, strategy):
    assert infer_letter(text, _capital_key()) == (letter, strategy)


def test_unmatched_answer_yields_null_letter_and_scores_wrong():
    key = _capital_key()
    assert infer_letter("Berlin", key) == (None, "none")
    assert infer_letter("", key) == (None, "empty")
    with pytest.raises(NoAnswerMatch):
        resolve_letter("Berlin", key)

    trail = AuditTrail("s1")
    [result] = score_mcq([key], {"G10_EN_Q1": "Berlin"}, trail=trail)
    assert result.inferred_letter is None
    assert result.is_correct is False
    assert trail.of("mcq", "no_match")


def test_contains_requires_a_unique_option():
    key = AnswerKey(label="K", domain="mathematics", construct="General", question_type="MCQ",
                    correct_answer="A", option_a="12", option_b="120", option_c="7", option_d="9")
    # "120" contains both "12" and "120"; exact still wins
    assert infer_letter("120", key) == ("B", "exact")
    assert infer_letter("about 120 apples", key)[0] is None


def test_missing_answer_scores_incorrect():
    [result] = score_mcq([_capital_key()], {})
    assert result.student_answer == ""
    assert result.inferred_letter is None
    assert not result.is_correct


def test_round_half_up():
    assert round1(64.25) == 64.3
    assert round1(0.05) == 0.1
    assert pct(9, 14) == 64.3
    assert pct(0, 0) == 0.0


def test_domain_percentages_and_not_assessed():
    keys = build_answer_keys(per_domain={"english": 14, "mindset": 4}, writing_domains=())
    results = score_mcq(keys, mcq_answers(keys, {"english": 9, "mindset": 3}))
    scores = {s.domain: s for s in domain_scores(results)}

    assert (scores["english"].correct, scores["english"].total, scores["english"].pct) == (9, 14, 64.3)
    assert scores["mathematics"].assessed is False
    assert scores["mathematics"].total == 0
    assert scores["mindset"].score == 3.0
    assert scores["english"].score is None


@pytest.mark.parametrize("right,expected", [(0, 0.0), (1, 1.0), (2, 2.0), (4, 4.0)])
def test_mindset_score_on_zero_to_four_scale(right, expected):
    keys = build_answer_keys(per_domain={"mindset": 4}, writing_domains=())
    scores = {s.domain: s for s in domain_scores(score_mcq(keys, mcq_answers(keys, {"mindset": right})))}
    assert scores["mindset"].score == expected


def test_construct_scores_group_by_domain_and_construct():
    keys = build_answer_keys(per_domain={"english": 4}, writing_domains=())
    results = score_mcq(keys, mcq_answers(keys, {"english": 3}))
    out = {(c.domain, c.construct): (c.correct, c.total) for c in construct_scores(results)}
    assert out == {("english", "Core"): (2, 2), ("english", "Extension"): (1, 2)}


def test_scoring_is_deterministic():
    keys = build_answer_keys()
    answers = mcq_answers(keys, {"english": 2, "mathematics": 3, "reasoning": 1, "mindset": 2})
    first = domain_scores(score_mcq(keys, answers))
    second = domain_scores(score_mcq(list(reversed(keys)), dict(reversed(list(answers.items())))))
    assert first == second
