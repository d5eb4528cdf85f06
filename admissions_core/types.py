from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal

QuestionType = Literal["MCQ", "Writing"]
WritingBand = Literal["Excellent", "Good", "Developing", "Emerging", "Insufficient"]
RecommendationBand = Literal[
    "Ready to admit",
    "Ready to admit with academic support",
    "Admit with language support",
    "Consider with support",
    "Not yet ready",
]

WRITING_BANDS: tuple[str, ...] = ("Excellent", "Good", "Developing", "Emerging", "Insufficient")
# ordered best to worst
RECOMMENDATION_BANDS: tuple[str, ...] = (
    "Ready to admit",
    "Ready to admit with academic support",
    "Admit with language support",
    "Consider with support",
    "Not yet ready",
)


@dataclass
class AnswerKey:
    label: str; domain: str; construct: str; question_type: QuestionType
    question_number: int = 0
    question_text: str = ""
    correct_answer: str = ""
    option_a: str = ""
    option_b: str = ""
    option_c: str = ""
    option_d: str = ""

    def options(self) -> Dict[str, str]:
        return {"A": self.option_a, "B": self.option_b, "C": self.option_c, "D": self.option_d}


@dataclass
class RawField:
    """One payload entry after the opaque prefix has been stripped."""
    key: str
    suffix: str
    value: str
    question_text: str = ""
    field_type: str = ""


@dataclass
class ResolvedField:
    key: str
    label: Optional[str]
    domain: str
    value: str
    strategy: str
    question_number: Optional[int] = None
    question_text: str = ""
    is_writing: bool = False


@dataclass
class QuestionResult:
    label: str
    domain: str
    construct: str
    question_number: int
    question_text: str
    student_answer: str
    inferred_letter: Optional[str]
    correct_answer: str
    is_correct: bool


@dataclass
class DomainScore:
    domain: str
    correct: int
    total: int
    pct: float
    assessed: bool = True
    score: Optional[float] = None  # 0-4, mindset only


@dataclass
class ConstructScore:
    domain: str
    construct: str
    correct: int
    total: int
    pct: float


@dataclass
class WritingTask:
    domain: str
    prompt_text: str
    student_response: str
    grade: int
    locale: str = "en-GB"
    programme: str = ""
    label: Optional[str] = None


@dataclass
class WritingEvaluation:
    domain: str
    band: WritingBand
    score: float
    content_narrative: str
    writing_narrative: str
    threshold_comment: str
    needs_review: bool = False
    source: Literal["ai", "guard", "fallback", "cache"] = "ai"


@dataclass
class MCQAnalysis:
    domain: str
    narrative: str
    constructs: List[ConstructScore] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    missed: List[str] = field(default_factory=list)
    needs_review: bool = False


@dataclass
class DomainResult:
    """Blended per-domain input to the recommendation step."""
    domain: str
    mcq_pct: float
    combined_pct: float
    threshold: float
    assessed: bool = True
    writing_score: Optional[float] = None


@dataclass
class RecommendationResult:
    deltas: Dict[str, float]
    overall_academic_pct: float
    recommendation_band: RecommendationBand
    narrative: str
    combined: Dict[str, float] = field(default_factory=dict)
    not_assessed: List[str] = field(default_factory=list)
    lens_scores: Dict[str, float] = field(default_factory=dict)
    needs_review: bool = False


@dataclass
class ExecutiveSummary:
    text: str
    needs_review: bool = False
    source: Literal["ai", "fallback"] = "ai"


@dataclass
class StudentContext:
    first_name: str = ""
    full_name: str = ""
    grade: int = 0
    programme: str = ""
    locale: str = "en-GB"
    school_id: str = ""


@dataclass
class ScoringResult:
    submission_id: str
    student: StudentContext
    question_results: List[QuestionResult]
    domain_scores: List[DomainScore]
    construct_scores: List[ConstructScore]
    writing: List[WritingEvaluation]
    analyses: List[MCQAnalysis]
    narratives: Dict[str, str]
    recommendation: RecommendationResult
    summary: ExecutiveSummary
    needs_review: List[str] = field(default_factory=list)
    audit_events: List[Dict[str, object]] = field(default_factory=list)
