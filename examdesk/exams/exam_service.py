import logging
import math
import random
from datetime import datetime
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from examdesk.exams import config
from examdesk.exams.availability import (
    AvailabilityDecision,
    evaluate_availability,
    requires_enrollment_lookup,
)
from examdesk.exams.database import (
    count_exam_attempts,
    get_exam,
    get_exam_history,
    get_paid_course_ids,
    get_student_ledger,
    has_paid_enrollment,
    list_available_exams,
)
from examdesk.exams.errors import (
    AnswerValidationError,
    AttemptConflict,
    ExamForbidden,
    ExamNotFound,
    ResultsNotFound,
    TransientError,
)
from examdesk.exams.models import (
    AttemptRecord,
    ChoiceLabel,
    DenialReason,
    Exam,
    ExamSubmission,
    UNLIMITED,
)
from examdesk.exams.recorder import record_attempt
from examdesk.exams.scoring import ScoreResult, calculate_percentage, score_submission

logger = logging.getLogger(__name__)

VALID_CHOICES = {c.value for c in ChoiceLabel}

# ==================== LOOKUPS ====================

async def load_exam(db: AsyncIOMotorDatabase, exam_id: str) -> Exam:
    doc = await get_exam(db, exam_id)
    if not doc:
        raise ExamNotFound("Exam not found", details={"exam_id": exam_id})
    return Exam(**doc)


async def lookup_enrollment(db: AsyncIOMotorDatabase, exam: Exam, student_id: str) -> Optional[bool]:
    """Paid enrollment for the exam's course, or None when the exam needs no lookup"""
    if not requires_enrollment_lookup(exam):
        return None
    if not exam.course_id:
        return False
    return await has_paid_enrollment(db, student_id, exam.course_id)


async def evaluate_for_student(
    db: AsyncIOMotorDatabase,
    exam: Exam,
    student_id: str,
    has_paid: Optional[bool] = None,
) -> AvailabilityDecision:
    if has_paid is None:
        has_paid = await lookup_enrollment(db, exam, student_id)
    ledger = await get_student_ledger(db, student_id)
    prior = count_exam_attempts(ledger, exam.exam_id, exam.title)
    return evaluate_availability(
        exam,
        datetime.utcnow(),
        has_paid,
        prior,
        both_requires_enrollment=config.BOTH_VISIBILITY_REQUIRES_ENROLLMENT,
    )


def deny(decision: AvailabilityDecision, student_id: str, exam: Exam):
    logger.info(
        "Exam access denied",
        extra={"student_id": student_id, "exam_id": exam.exam_id, "reason": decision.reason.value},
    )
    raise ExamForbidden(decision.message, code=decision.reason.value)

# ==================== VIEWS ====================

def to_student_view(exam: Exam, shuffle: bool = False) -> dict:
    """Exam as a student may see it: no correct answers"""
    questions = [
        {
            "questionId": q.question_id,
            "title": q.title,
            "options": q.options.model_dump(),
            "imageUrl": q.image_url,
        }
        for q in exam.questions
    ]
    if shuffle and exam.shuffle_questions:
        random.shuffle(questions)

    return {
        "examId": exam.exam_id,
        "title": exam.title,
        "duration": exam.duration,
        "questions": questions,
        "visibility": exam.visibility.value,
        "courseId": exam.course_id,
        "passingScore": exam.passing_score,
        "maxAttempts": exam.max_attempts,
        "isUnlimitedAttempts": exam.attempt_policy.unlimited,
        "showResultsImmediately": exam.show_results_immediately,
        "startDate": exam.start_date,
        "endDate": exam.end_date,
        "instructions": exam.instructions,
    }


def to_result_view(record: dict) -> dict:
    correct = record.get("correct_answers", 0)
    total = record.get("total_questions", 0)
    return {
        "resultId": record.get("result_id"),
        "examId": record.get("exam_id"),
        "examTitle": record.get("exam_title"),
        "score": correct,
        "totalQuestions": total,
        "percentage": calculate_percentage(correct, total),
        "passed": record.get("passed"),
        "examDate": record.get("exam_date"),
        "attemptNumber": record.get("attempt_number"),
        "timeSpent": record.get("time_spent", 0),
    }


def availability_response(decision: AvailabilityDecision) -> dict:
    policy = decision.policy
    if not decision.allowed and decision.reason == DenialReason.ATTEMPTS_EXHAUSTED:
        return {
            "available": False,
            "message": decision.message,
            "reason": decision.reason.value,
            "attemptsUsed": decision.attempts_used,
            "maxAttempts": policy.cap,
            "isUnlimitedAttempts": False,
        }
    if not decision.allowed:
        return {"available": False, "message": decision.message, "reason": decision.reason.value}

    return {
        "available": True,
        "message": decision.message,
        "attemptsUsed": decision.attempts_used,
        "isUnlimitedAttempts": policy.unlimited,
        "maxAttempts": policy.cap if policy.is_capped else UNLIMITED,
        "remainingAttempts": decision.attempts_remaining,
    }


def submission_response(exam: Exam, result: ScoreResult, record: AttemptRecord) -> dict:
    response = {
        "success": True,
        "message": (
            "Congratulations! You passed the exam"
            if result.passed
            else "Unfortunately you did not reach the passing score"
        ),
        "resultId": record.result_id,
        "attemptNumber": record.attempt_number,
        "passed": result.passed,
    }
    if exam.show_results_immediately:
        response["results"] = {
            "score": result.score,
            "totalQuestions": result.total_questions,
            "percentage": result.percentage,
            "passingScore": exam.passing_score,
            "questionResults": [qr.to_response() for qr in result.question_results],
        }
    return response

# ==================== WORKFLOW ====================

async def check_availability(db: AsyncIOMotorDatabase, exam_id: str, student_id: str) -> dict:
    exam = await load_exam(db, exam_id)
    decision = await evaluate_for_student(db, exam, student_id)
    return availability_response(decision)


async def get_exam_for_student(db: AsyncIOMotorDatabase, exam_id: str, student_id: str) -> dict:
    exam = await load_exam(db, exam_id)
    decision = await evaluate_for_student(db, exam, student_id)
    if not decision.allowed:
        deny(decision, student_id, exam)

    view = to_student_view(exam, shuffle=True)
    view["attemptsRemaining"] = decision.attempts_remaining
    return view


def validate_answer_labels(answers: Dict[str, Optional[str]]):
    invalid = {qid: a for qid, a in answers.items() if a is not None and a not in VALID_CHOICES}
    if invalid:
        raise AnswerValidationError(
            "Answers must be one of: " + ", ".join(sorted(VALID_CHOICES)),
            details={"invalid_answers": invalid},
        )


async def submit_exam(
    db: AsyncIOMotorDatabase,
    exam_id: str,
    student_id: str,
    submission: ExamSubmission,
) -> dict:
    """
    Gate, score and record one submission.

    The availability check, scoring and the guarded write are repeated when the
    write loses a race, so the attempt cap is checked against the fresh count.
    """
    exam = await load_exam(db, exam_id)
    validate_answer_labels(submission.answers)
    has_paid = await lookup_enrollment(db, exam, student_id)

    for attempt in range(config.ATTEMPT_WRITE_RETRIES + 1):
        decision = await evaluate_for_student(db, exam, student_id, has_paid)
        if not decision.allowed:
            deny(decision, student_id, exam)

        result = score_submission(exam.questions, submission.answers, exam.passing_score)
        try:
            record = await record_attempt(
                db, student_id, exam, result, submission.time_spent, decision.attempts_used
            )
        except AttemptConflict:
            logger.warning(
                "Retrying exam submission after conflict",
                extra={"student_id": student_id, "exam_id": exam.exam_id, "try": attempt + 1},
            )
            continue

        logger.info(
            "Exam submitted",
            extra={
                "student_id": student_id,
                "exam_id": exam.exam_id,
                "attempt_number": record.attempt_number,
                "percentage": result.percentage,
                "passed": result.passed,
            },
        )
        return submission_response(exam, result, record)

    raise TransientError("Your submission could not be saved, please try again")


async def get_exam_results(db: AsyncIOMotorDatabase, exam_id: str, student_id: str) -> dict:
    """Full attempt history of the student (all exams)"""
    await load_exam(db, exam_id)
    ledger = await get_student_ledger(db, student_id)
    if not ledger or not ledger.get("results"):
        raise ResultsNotFound("You have not taken this exam yet")
    return {"results": [to_result_view(r) for r in ledger["results"]]}


async def get_my_results(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    ledger = await get_student_ledger(db, student_id)
    results: List[dict] = ledger.get("results", []) if ledger else []
    return {"studentId": student_id, "results": [to_result_view(r) for r in results]}


async def get_attempt_history(db: AsyncIOMotorDatabase, student_id: str, exam_id: str) -> dict:
    exam = await get_exam(db, exam_id)
    title = exam.get("title") if exam else None
    history = await get_exam_history(db, student_id, exam_id, title)
    return {"examId": exam_id, "results": [to_result_view(r) for r in history]}


async def list_exams_for_student(
    db: AsyncIOMotorDatabase,
    student_id: str,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
) -> dict:
    limit = max(1, min(limit, config.MAX_PAGE_SIZE))
    page = max(1, page)
    course_ids = await get_paid_course_ids(db, student_id)
    docs, total = await list_available_exams(
        db, datetime.utcnow(), course_ids, skip=(page - 1) * limit, limit=limit
    )
    return {
        "exams": [to_student_view(Exam(**doc)) for doc in docs],
        "currentPage": page,
        "totalPages": math.ceil(total / limit),
        "totalExams": total,
    }
