from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from examdesk.exams import exam_service as service
from examdesk.exams.dependencies import get_db, get_current_user_id

router = APIRouter(prefix="/examResults", tags=["Exam Results"])


@router.get("/getMe")
async def get_my_results(
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """All attempts of the signed-in student (empty list if none)"""
    return await service.get_my_results(db, student_id)


@router.get("/history/{exam_id}")
async def get_exam_history(
    exam_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    student_id: str = Depends(get_current_user_id)
):
    """Attempts of the signed-in student for one exam, oldest first"""
    return await service.get_attempt_history(db, student_id, exam_id)
