import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from examdesk.exams.models import Question


@dataclass
class QuestionResult:
    question_id: str
    question_title: str
    student_answer: Optional[str]
    correct_answer: str
    is_correct: bool

    def to_response(self) -> dict:
        return {
            "questionId": self.question_id,
            "questionTitle": self.question_title,
            "studentAnswer": self.student_answer,
            "correctAnswer": self.correct_answer,
            "isCorrect": self.is_correct,
        }


@dataclass
class ScoreResult:
    score: int
    total_questions: int
    percentage: int
    passed: bool
    question_results: List[QuestionResult] = field(default_factory=list)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_percentage(correct: int, total: int) -> int:
    """Whole-number percentage, 0 for an exam without questions."""
    if total <= 0:
        return 0
    return round_half_up(correct * 100 / total)


def score_submission(
    questions: List[Question],
    answers: Dict[str, Optional[str]],
    passing_score: int,
) -> ScoreResult:
    """
    Score submitted answers against the exam's questions.

    A question without an answer counts as wrong. Answers for ids that are not
    part of the exam are ignored.
    """
    question_results = []
    score = 0

    for question in questions:
        student_answer = answers.get(question.question_id)
        correct_answer = question.correct_answer.value
        is_correct = student_answer == correct_answer
        if is_correct:
            score += 1

        question_results.append(QuestionResult(
            question_id=question.question_id,
            question_title=question.title,
            student_answer=student_answer,
            correct_answer=correct_answer,
            is_correct=is_correct,
        ))

    total = len(questions)
    percentage = calculate_percentage(score, total)

    return ScoreResult(
        score=score,
        total_questions=total,
        percentage=percentage,
        passed=percentage >= passing_score,
        question_results=question_results,
    )
