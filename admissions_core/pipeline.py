"""One scoring run for one submission.

The pipeline is re-runnable: everything before the AI stage is a pure
function of (payload, answer keys), and writing evaluations passed in as
``cached_writing`` are reused unless ``rescore`` is set.  Independent AI
requests (one per writing task, per analysed domain and per narrative) run
on a small thread pool; a failure in one of them degrades only its own
output.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from . import config as cfg_defaults
from .analyser import MCQAnalyser
from .answer_keys import Thresholds, keys_for_domain, load_answer_keys, load_thresholds
from .audit import AuditTrail
from .config import ACADEMIC_DOMAINS, DOMAINS, RetryPolicy
from .errors import MissingConfiguration
from .evaluator import WritingEvaluator, fallback as writing_fallback
from .fields import FieldResolver, extract_student
from .llm_bridge import TextService, service_from_cfg
from .mcq import construct_scores, domain_scores, score_mcq
from .narratives import FALLBACK_NARRATIVE, NarrativeWriter
from .recommendation import build_domain_results, calculate
from .summary import SummaryGenerator, template_summary
from .types import AnswerKey, DomainScore, ExecutiveSummary, MCQAnalysis, ScoringResult, WritingEvaluation
from .writing import extract_writing

log = logging.getLogger(__name__)


def check_domain_config(keys: Sequence[AnswerKey], domain: str) -> None:
    if not keys_for_domain(keys, domain):
        raise MissingConfiguration("no answer keys configured", domain=domain)


class ScoringPipeline:
    def __init__(
        self,
        service: Optional[TextService] = None,
        *,
        policy: Optional[RetryPolicy] = None,
        max_workers: int = cfg_defaults.AI_MAX_WORKERS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.policy = policy or RetryPolicy()
        self.max_workers = max(1, max_workers)
        self.sleep = sleep

    @classmethod
    def from_cfg(cls, cfg: Optional[Mapping[str, Any]] = None,
                 service: Optional[TextService] = None) -> "ScoringPipeline":
        cfg = cfg or {}
        return cls(
            service if service is not None else service_from_cfg(cfg),
            policy=RetryPolicy.from_cfg(cfg),
            max_workers=int(cfg.get("AI_MAX_WORKERS", cfg_defaults.AI_MAX_WORKERS)),
        )

    def run(
        self,
        submission_id: str,
        payload: Mapping[str, Any],
        *,
        grade: Optional[int] = None,
        school_id: str = "",
        form_version: Optional[str] = None,
        keys: Optional[Sequence[AnswerKey]] = None,
        thresholds: Optional[Thresholds] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        cached_writing: Optional[Sequence[WritingEvaluation]] = None,
        rescore: bool = False,
        trail: Optional[AuditTrail] = None,
    ) -> ScoringResult:
        trail = trail or AuditTrail(submission_id)
        o = dict(overrides or {})
        if grade is not None:
            o["grade"] = grade
        if school_id:
            o["school_id"] = school_id
        student = extract_student(payload, o)
        review: List[str] = []

        if keys is None:
            try:
                keys = load_answer_keys(student.grade, form_version)
            except MissingConfiguration as exc:
                trail.emit("config", "failed", error=str(exc))
                review.append(f"configuration: {exc}")
                keys = []
        keys = list(keys)
        if thresholds is None:
            try:
                thresholds = load_thresholds(student.school_id, student.grade)
            except MissingConfiguration as exc:
                trail.emit("config", "failed", error=str(exc))
                review.append(f"configuration: {exc}")
                thresholds = Thresholds()

        for d in DOMAINS:
            try:
                check_domain_config(keys, d)
            except MissingConfiguration as exc:
                trail.emit("config", "not_assessed", domain=d, reason=exc.what)

        resolution = FieldResolver(keys, trail=trail).resolve(payload)
        results = score_mcq(keys, resolution.by_label(), trail=trail)
        scores = domain_scores(results)
        constructs = construct_scores(results)
        for s in scores:
            trail.emit("mcq", "domain_scored" if s.assessed else "not_assessed", domain=s.domain,
                       pct=s.pct, score=s.score, reason="" if s.assessed else "no items")
        tasks = extract_writing(resolution, keys, student, trail=trail)

        by_domain: Dict[str, DomainScore] = {s.domain: s for s in scores}
        cached = {w.domain: w for w in (cached_writing or [])}
        evaluator = WritingEvaluator(self.service, policy=self.policy, trail=trail, sleep=self.sleep)
        analyser = MCQAnalyser(self.service, policy=self.policy, trail=trail, sleep=self.sleep)
        writer = NarrativeWriter(self.service, policy=self.policy, trail=trail, sleep=self.sleep)

        writing: Dict[str, WritingEvaluation] = {}
        analyses: Dict[str, MCQAnalysis] = {}
        narratives: Dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ai") as pool:
            futures = {}
            for task in tasks:
                if task.domain in cached and not rescore:
                    writing[task.domain] = replace(cached[task.domain], source="cache")
                    trail.emit("evaluator", "cached", domain=task.domain, band=cached[task.domain].band)
                    continue
                futures[("writing", task.domain)] = pool.submit(evaluator.evaluate, task, student.first_name)
            for d in ACADEMIC_DOMAINS:
                futures[("analysis", d)] = pool.submit(analyser.analyse, d, results, student)
            reasoning = by_domain.get("reasoning")
            if reasoning and reasoning.assessed:
                futures[("narrative", "reasoning")] = pool.submit(
                    writer.reasoning, reasoning, thresholds.for_domain("reasoning"), student)
            mindset = by_domain.get("mindset")
            if mindset and mindset.score is not None:
                futures[("narrative", "mindset")] = pool.submit(writer.mindset, mindset.score, student)

            for (kind, domain), fut in futures.items():
                try:
                    value = fut.result()
                except Exception:
                    # contain anything unexpected to this one unit
                    log.exception("%s for %s failed", kind, domain)
                    trail.emit(kind, "failed", domain=domain)
                    review.append(f"{kind}:{domain}")
                    if kind == "writing":
                        writing[domain] = writing_fallback(domain, "unexpected error")
                    elif kind == "narrative":
                        narratives[domain] = FALLBACK_NARRATIVE
                    continue
                if kind == "writing":
                    writing[domain] = value
                elif kind == "analysis" and value is not None:
                    analyses[domain] = value
                elif kind == "narrative":
                    text, ok = value
                    narratives[domain] = text
                    if not ok:
                        review.append(f"narrative:{domain}")

        review.extend(f"writing:{d}" for d, w in writing.items() if w.needs_review)
        review.extend(f"analysis:{d}" for d, a in analyses.items() if a.needs_review)

        domain_results = build_domain_results(scores, writing.values(), thresholds)
        mindset_score = by_domain["mindset"].score if "mindset" in by_domain else None
        lens = {d: writing[d].score for d in ("values", "creativity") if d in writing}
        rec = calculate(domain_results, mindset_score, weights=thresholds.weights, lens_scores=lens)
        trail.emit("recommendation", "calculated", band=rec.recommendation_band,
                   score=rec.overall_academic_pct, rule=rec.narrative)
        review.extend(f"not_assessed:{d}" for d in rec.not_assessed)
        if rec.needs_review:
            review.append("recommendation")

        try:
            summary = SummaryGenerator(self.service, policy=self.policy, trail=trail, sleep=self.sleep).generate(
                student, rec, domain_results, writing, mindset_score)
        except Exception:
            log.exception("summary failed")
            trail.emit("summary", "failed")
            summary = ExecutiveSummary(template_summary(student, rec), needs_review=True, source="fallback")
        if summary.needs_review:
            review.append("summary")

        return ScoringResult(
            submission_id=submission_id,
            student=student,
            question_results=results,
            domain_scores=scores,
            construct_scores=constructs,
            writing=[writing[d] for d in DOMAINS if d in writing],
            analyses=[analyses[d] for d in ACADEMIC_DOMAINS if d in analyses],
            narratives=narratives,
            recommendation=rec,
            summary=summary,
            needs_review=sorted(set(review)),
            audit_events=trail.events,
        )


def score_submission(submission_id: str, payload: Mapping[str, Any], *,
                     service: Optional[TextService] = None, **kwargs: Any) -> ScoringResult:
    """Convenience wrapper using configuration from ``load_config()``."""
    return ScoringPipeline.from_cfg(cfg_defaults.load_config(), service=service).run(submission_id, payload, **kwargs)


__all__ = ["ScoringPipeline", "score_submission", "check_domain_config"]
