from __future__ import annotations

from admissions_core.audit import AuditTrail
from admissions_core.config import RetryPolicy
from admissions_core.recommendation import calculate
from admissions_core.summary import SummaryGenerator, opens_with_name, template_summary
from admissions_core.types import DomainResult, StudentContext

from tests.conftest import FakeTextService, no_sleep


def _inputs():
    domains = [DomainResult("english", 70.0, 70.0, 55.0), DomainResult("mathematics", 60.0, 60.0, 55.0),
               DomainResult("reasoning", 0.0, 0.0, 55.0, assessed=False)]
    return domains, calculate(domains, 3.0)


def test_summary_from_service_opens_with_first_name(student):
    domains, rec = _inputs()
    svc = FakeTextService(["Amira presents a balanced profile. Based on this profile, the recommendation is "
                           "Ready to admit."])
    out = SummaryGenerator(svc, policy=RetryPolicy.immediate(), sleep=no_sleep).generate(
        student, rec, domains, {}, 3.0)

    assert out.source == "ai"
    assert not out.needs_review
    assert "Reasoning: not assessed" in svc.calls[0]["user"]
    assert '"Amira"' in svc.calls[0]["system"]


def test_summary_not_opening_with_name_is_replaced(student):
    domains, rec = _inputs()
    trail = AuditTrail()
    svc = FakeTextService(["The student presents a balanced profile."])
    out = SummaryGenerator(svc, policy=RetryPolicy.immediate(), trail=trail, sleep=no_sleep).generate(
        student, rec, domains, {}, 3.0)

    assert out.source == "fallback"
    assert out.needs_review
    assert out.text == template_summary(student, rec)
    assert trail.of("summary", "fallback")


def test_template_summary_without_service():
    domains, rec = _inputs()
    out = SummaryGenerator(None, policy=RetryPolicy.immediate(), sleep=no_sleep).generate(
        StudentContext(), rec, domains, {}, None)
    assert out.text == ("This applicant achieved an overall academic score of 65.0%. "
                        "Based on this profile, the recommendation is Ready to admit.")


def test_opens_with_name_ignores_leading_quotes():
    assert opens_with_name('"Amira shows..."', "Amira")
    assert opens_with_name("amira shows", "Amira")
    assert not opens_with_name("Amiran shows", "Amira")
    assert not opens_with_name("Overall, Amira shows", "Amira")
