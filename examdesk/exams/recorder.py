"""
Attempt recorder

Appends one attempt record per accepted submission to the student's ledger.
"""

import logging
import uuid
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase

from examdesk.exams.database import append_attempt_guarded, ensure_ledger
from examdesk.exams.errors import AttemptConflict
from examdesk.exams.models import AttemptRecord, Exam
from examdesk.exams.scoring import ScoreResult

logger = logging.getLogger(__name__)


def generate_result_id() -> str:
    return f"RES_{uuid.uuid4().hex[:12].upper()}"


async def record_attempt(
    db: AsyncIOMotorDatabase,
    student_id: str,
    exam: Exam,
    result: ScoreResult,
    time_spent: float,
    prior_count: int,
) -> AttemptRecord:
    """
    Record attempt number ``prior_count + 1``.

    Raises AttemptConflict when another attempt for the same exam was written
    after ``prior_count`` was read.
    """
    record = AttemptRecord(
        result_id=generate_result_id(),
        exam_id=exam.exam_id,
        exam_title=exam.title,
        total_questions=result.total_questions,
        correct_answers=result.score,
        percentage=result.percentage,
        passed=result.passed,
        exam_date=datetime.utcnow(),
        attempt_number=prior_count + 1,
        time_spent=time_spent or 0,
    )

    await ensure_ledger(db, student_id)
    appended = await append_attempt_guarded(
        db, student_id, exam.exam_id, record.model_dump(), prior_count
    )
    if not appended:
        logger.warning(
            "Attempt number conflict",
            extra={"student_id": student_id, "exam_id": exam.exam_id, "attempt_number": record.attempt_number},
        )
        raise AttemptConflict(
            "Another submission for this exam was recorded at the same time",
            details={"attempt_number": record.attempt_number},
        )
    return record
