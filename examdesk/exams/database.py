from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError
from datetime import datetime
from typing import List, Optional, Tuple
import logging
from examdesk.exams.models import PAID

logger = logging.getLogger(__name__)

# Collections
EXAMS = "exams"
ENROLLMENTS = "enrollments"
LEDGERS = "student_exam_results"

# ==================== INDEXES ====================

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create MongoDB indexes for data integrity"""
    try:
        await db[EXAMS].create_index([("exam_id", 1)], unique=True)

        # One ledger document per student (guards concurrent first submissions).
        # Sparse: ledgers not yet migrated are keyed by studentId instead.
        await db[LEDGERS].create_index([("student_id", 1)], unique=True, sparse=True)

        await db[ENROLLMENTS].create_index(
            [("student_id", 1), ("course_id", 1), ("payment_status", 1)]
        )
        logger.info("Exam indexes created")
    except PyMongoError as e:
        logger.warning("Index creation warning: %s", e)

# ==================== EXAMS ====================

async def get_exam(db: AsyncIOMotorDatabase, exam_id: str) -> Optional[dict]:
    return await db[EXAMS].find_one({"exam_id": exam_id})

def available_exams_query(now: datetime, enrolled_course_ids: List[str]) -> dict:
    return {
        "is_active": True,
        "$and": [
            {"$or": [{"start_date": None}, {"start_date": {"$lte": now}}]},
            {"$or": [{"end_date": None}, {"end_date": {"$gte": now}}]},
            {"$or": [
                {"visibility": "public"},
                {"visibility": "both"},
                {"visibility": "course_only", "course_id": {"$in": enrolled_course_ids}},
            ]},
        ],
    }

async def list_available_exams(
    db: AsyncIOMotorDatabase,
    now: datetime,
    enrolled_course_ids: List[str],
    skip: int = 0,
    limit: int = 10
) -> Tuple[List[dict], int]:
    """Exams a student can see right now, newest first"""
    query = available_exams_query(now, enrolled_course_ids)
    total = await db[EXAMS].count_documents(query)
    cursor = db[EXAMS].find(query).sort("created_at", -1).skip(skip).limit(limit)
    exams = await cursor.to_list(length=limit)
    return exams, total

# ==================== ENROLLMENTS ====================

async def has_paid_enrollment(db: AsyncIOMotorDatabase, student_id: str, course_id: str) -> bool:
    enrollment = await db[ENROLLMENTS].find_one({
        "student_id": student_id,
        "course_id": course_id,
        "payment_status": PAID
    })
    return enrollment is not None

async def get_paid_course_ids(db: AsyncIOMotorDatabase, student_id: str) -> List[str]:
    cursor = db[ENROLLMENTS].find(
        {"student_id": student_id, "payment_status": PAID},
        {"course_id": 1}
    )
    return [e["course_id"] for e in await cursor.to_list(length=None)]

# ==================== ATTEMPT LEDGER ====================

def counter_key(exam_id: str) -> str:
    """
    Field name for an exam's attempt counter.

    Percent-encodes ``%``, ``.`` and ``$`` so distinct exam ids never share a
    field and dots never nest the path.
    """
    return exam_id.replace("%", "%25").replace(".", "%2E").replace("$", "%24")

def is_exam_attempt(record: dict, exam_id: str, exam_title: Optional[str] = None) -> bool:
    """Record belongs to the exam by id, or by title when it predates exam ids"""
    if record.get("exam_id"):
        return record["exam_id"] == exam_id
    return exam_title is not None and record.get("exam_title") == exam_title

def count_exam_attempts(ledger: Optional[dict], exam_id: str, exam_title: Optional[str] = None) -> int:
    if not ledger:
        return 0
    return sum(1 for r in ledger.get("results", []) if is_exam_attempt(r, exam_id, exam_title))

async def get_student_ledger(db: AsyncIOMotorDatabase, student_id: str) -> Optional[dict]:
    return await db[LEDGERS].find_one({"student_id": student_id})

async def get_exam_history(
    db: AsyncIOMotorDatabase,
    student_id: str,
    exam_id: str,
    exam_title: Optional[str] = None
) -> List[dict]:
    ledger = await get_student_ledger(db, student_id)
    if not ledger:
        return []
    return [r for r in ledger.get("results", []) if is_exam_attempt(r, exam_id, exam_title)]

async def ensure_ledger(db: AsyncIOMotorDatabase, student_id: str):
    """Create the student's ledger document if it does not exist yet"""
    now = datetime.utcnow()
    try:
        await db[LEDGERS].update_one(
            {"student_id": student_id},
            {"$setOnInsert": {
                "results": [],
                "attempt_counters": {},
                "created_at": now,
                "updated_at": now
            }},
            upsert=True
        )
    except DuplicateKeyError:
        # A concurrent request created it first
        pass

async def append_attempt_guarded(
    db: AsyncIOMotorDatabase,
    student_id: str,
    exam_id: str,
    record: dict,
    prior_count: int
) -> bool:
    """
    Push ``record`` only if no other attempt for this exam landed since the
    caller counted ``prior_count``. The counter is moved to
    ``prior_count + 1`` in the same update.

    Returns False when the guard did not match.
    """
    field = f"attempt_counters.{counter_key(exam_id)}"
    result = await db[LEDGERS].update_one(
        {
            "student_id": student_id,
            "$or": [{field: prior_count}, {field: {"$exists": False}}]
        },
        {
            "$push": {"results": record},
            "$set": {field: prior_count + 1, "updated_at": datetime.utcnow()}
        }
    )
    return result.modified_count == 1
