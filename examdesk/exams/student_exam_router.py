"""
STUDENT EXAM ROUTER
File: examdesk/exams/student_exam_router.py

Availability check, exam fetch, submission and results for the signed-in student.
Denials from the availability rules come back as 403 here, except on
check-availability which answers 200 with available=false.
"""

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from examdesk.exams import exam_service as service
from examdesk.exams.config import DEFAULT_PAGE_SIZE
from examdesk.exams.models import ExamSubmission
from examdesk.exams.dependencies import get_db, get_current_user_id

router = APIRouter(prefix="/studentExam", tags=["Student Exams"])

# ==================== AVAILABILITY ====================

@router.get("/check-availability/{exam_id}")
async def check_availability(
    exam_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """Can the student take this exam now, and how many attempts are left"""
    return await service.check_availability(db, exam_id, student_id)


@router.get("/available")
async def list_available_exams(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """Exams open to the student right now (paginated, newest first)"""
    return await service.list_exams_for_student(db, student_id, page, limit)

# ==================== TAKING THE EXAM ====================

@router.get("/exam/{exam_id}")
async def get_exam(
    exam_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """
    Exam questions without correct answers
    403 if the exam is not available to the student
    """
    return await service.get_exam_for_student(db, exam_id, student_id)


@router.post("/submit/{exam_id}", status_code=201)
async def submit_exam(
    exam_id: str,
    submission: ExamSubmission,
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """
    Submit answers {questionId: "a" | "b" | "c" | "d"}

    Server enforces:
    - Availability window, enrollment and attempt cap (403)
    - One attempt number per submission, even under concurrent requests
    Detailed results are returned only if the exam shows results immediately
    """
    return await service.submit_exam(db, exam_id, student_id, submission)

# ==================== RESULTS ====================

@router.get("/{exam_id}/results")
async def get_exam_results(
    exam_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """Student's attempt history; every item carries examId"""
    return await service.get_exam_results(db, exam_id, student_id)
