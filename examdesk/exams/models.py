from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum

# ==================== ENUMS ====================

class Visibility(str, Enum):
    PUBLIC = "public"
    COURSE_ONLY = "course_only"
    BOTH = "both"

class ChoiceLabel(str, Enum):
    A = "a"
    B = "b"
    C = "c"
    D = "d"

class DenialReason(str, Enum):
    NOT_ACTIVE = "EXAM_NOT_ACTIVE"
    NOT_STARTED = "EXAM_NOT_STARTED"
    ENDED = "EXAM_ENDED"
    NOT_ENROLLED = "NOT_ENROLLED"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"

PAID = "paid"
UNLIMITED = "unlimited"

# ==================== EXAM DOCUMENTS ====================

class QuestionOptions(BaseModel):
    a: str
    b: str
    c: str
    d: str

class Question(BaseModel):
    model_config = ConfigDict(extra="ignore")

    question_id: str
    title: str
    options: QuestionOptions
    correct_answer: ChoiceLabel
    image_url: Optional[str] = None

class Exam(BaseModel):
    """Exam document as stored in the ``exams`` collection."""

    model_config = ConfigDict(extra="ignore")

    exam_id: str
    title: str
    duration: int = 0  # minutes
    questions: List[Question] = []
    visibility: Visibility = Visibility.PUBLIC
    course_id: Optional[str] = None
    passing_score: int = 60
    max_attempts: int = -1
    # absent on exams created before the flag existed
    is_unlimited_attempts: Optional[bool] = None
    show_results_immediately: bool = True
    shuffle_questions: bool = False
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    instructions: str = ""
    created_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "created_at")
    @classmethod
    def to_naive_utc(cls, v):
        # Mongo hands back naive UTC datetimes, keep everything comparable with them
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @property
    def attempt_policy(self) -> "AttemptPolicy":
        return AttemptPolicy.from_exam_fields(self.is_unlimited_attempts, self.max_attempts)

# ==================== ATTEMPT POLICY ====================

@dataclass(frozen=True)
class AttemptPolicy:
    """
    Attempt limit decoded from the stored (is_unlimited_attempts, max_attempts) pair.

    ``cap`` is None when no limit applies. ``unlimited`` mirrors the stored flag
    semantics, so an exam with the flag off but no positive cap is uncapped
    while still reporting ``unlimited=False``.
    """
    unlimited: bool
    cap: Optional[int] = None

    @classmethod
    def from_exam_fields(cls, is_unlimited_attempts: Optional[bool], max_attempts: int) -> "AttemptPolicy":
        unlimited = is_unlimited_attempts is not False and (
            is_unlimited_attempts is True or max_attempts == -1
        )
        if not unlimited and max_attempts > 0:
            return cls(unlimited=False, cap=max_attempts)
        return cls(unlimited=unlimited)

    @property
    def is_capped(self) -> bool:
        return self.cap is not None

    def is_exhausted(self, attempts_used: int) -> bool:
        return self.is_capped and attempts_used >= self.cap

    def remaining(self, attempts_used: int):
        """Attempts left, or ``"unlimited"``."""
        if not self.is_capped:
            return UNLIMITED
        return max(self.cap - attempts_used, 0)

# ==================== SUBMISSION MODELS ====================

class ExamSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answers: Dict[str, Optional[str]] = {}
    time_spent: float = Field(default=0, alias="timeSpent", ge=0)

    @field_validator("answers")
    @classmethod
    def validate_answers(cls, v):
        for question_id in v:
            if not question_id.strip():
                raise ValueError("Question ids must be non-empty")
        return v

    @field_validator("time_spent", mode="before")
    @classmethod
    def default_time_spent(cls, v):
        # clients send null when the timer was not started
        return 0 if v is None else v

# ==================== LEDGER MODELS ====================

class AttemptRecord(BaseModel):
    result_id: str
    exam_id: Optional[str] = None  # None only on legacy, not yet migrated records
    exam_title: str
    total_questions: int
    correct_answers: int
    percentage: int
    passed: bool
    exam_date: datetime
    attempt_number: int
    time_spent: float = 0
