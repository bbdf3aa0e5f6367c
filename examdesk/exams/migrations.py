"""
Attempt ledger migration: title keys to exam ids

Older ledgers are keyed by ``studentId`` and store camelCase attempt records
(``examTitle``, ``correctAnswers``...) that name the exam by title only.
This converts them to the current ledger shape and assigns ``exam_id`` to
every record whose title matches exactly one exam.

Attempt counters are left alone: before and after keying, a record counts
toward the same exam (by id, or by title while it has none). Ledgers merged
into an existing ``student_id`` ledger drop their counters, which the next
submission recreates from the full record count.

Every ledger write is guarded on the number of records read, so an attempt
appended while the migration runs is never overwritten. Run once with:

    python -m examdesk.exams.migrations
"""

import asyncio
import logging
from collections import Counter, defaultdict
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from examdesk.exams.database import EXAMS, LEDGERS, ensure_ledger
from examdesk.exams.recorder import generate_result_id
from examdesk.exams.scoring import calculate_percentage

logger = logging.getLogger(__name__)

# Attempts at rewriting a ledger that keeps changing under us
MAX_LEDGER_RETRIES = 5

# Original record field -> current record field
ORIGINAL_RECORD_FIELDS = {
    "examTitle": "exam_title",
    "totalQuestions": "total_questions",
    "correctAnswers": "correct_answers",
    "examDate": "exam_date",
    "attemptNumber": "attempt_number",
    "timeSpent": "time_spent",
}


async def build_title_index(db: AsyncIOMotorDatabase) -> Dict[str, List[dict]]:
    titles = defaultdict(list)
    async for exam in db[EXAMS].find({}, {"exam_id": 1, "title": 1, "passing_score": 1}):
        titles[exam.get("title")].append(exam)
    return titles


def convert_original_record(record: dict) -> dict:
    """Map an original camelCase attempt record onto the current shape"""
    if "examTitle" not in record:
        return record

    converted = {new: record.get(old) for old, new in ORIGINAL_RECORD_FIELDS.items()}
    legacy_id = record.get("_id")
    converted["result_id"] = str(legacy_id) if legacy_id is not None else generate_result_id()
    converted["exam_id"] = record.get("exam_id")
    converted["correct_answers"] = converted["correct_answers"] or 0
    converted["total_questions"] = converted["total_questions"] or 0
    converted["time_spent"] = converted["time_spent"] or 0
    converted["percentage"] = calculate_percentage(
        converted["correct_answers"], converted["total_questions"]
    )
    converted["passed"] = record.get("passed")
    return converted


def assign_exam_id(record: dict, titles: Dict[str, List[dict]], stats: Counter) -> bool:
    """Key a title-only record when its title names exactly one exam"""
    if record.get("exam_id"):
        return False

    candidates = titles.get(record.get("exam_title"), [])
    if len(candidates) != 1:
        stats["ambiguous" if candidates else "unmatched"] += 1
        return False

    exam = candidates[0]
    record["exam_id"] = exam["exam_id"]
    if record.get("passed") is None and record.get("percentage") is not None:
        record["passed"] = record["percentage"] >= exam.get("passing_score", 60)
    stats["keyed"] += 1
    return True


def rekey_results(results: List[dict], titles: Dict[str, List[dict]]):
    """
    Returns (records, stats, changed) without touching ``results``.
    """
    stats = Counter()
    records = []
    changed = False
    for original in results:
        record = convert_original_record(dict(original))
        changed |= record != original
        changed |= assign_exam_id(record, titles, stats)
        records.append(record)
    return records, stats, changed


async def key_ledger(
    db: AsyncIOMotorDatabase,
    ledger: Optional[dict],
    titles: Dict[str, List[dict]],
) -> Counter:
    """
    Re-key one ``student_id`` ledger. ``ledger`` may be stale: when records
    were appended since it was read, it is re-read and keyed again.
    """
    ledger_id = ledger["_id"] if ledger else None
    for _ in range(MAX_LEDGER_RETRIES):
        if not ledger:
            return Counter()

        results = ledger.get("results", [])
        records, stats, changed = rekey_results(results, titles)
        if not changed:
            return stats

        written = await db[LEDGERS].update_one(
            {"_id": ledger_id, "results": {"$size": len(results)}},
            {"$set": {"results": records}}
        )
        if written.modified_count == 1:
            stats["ledgers"] += 1
            return stats

        logger.info("Ledger changed during migration, re-reading", extra={"ledger_id": str(ledger_id)})
        ledger = await db[LEDGERS].find_one({"_id": ledger_id})

    logger.warning("Ledger kept changing, skipped", extra={"ledger_id": str(ledger_id)})
    return Counter(busy=1)


async def merge_original_ledger(
    db: AsyncIOMotorDatabase,
    legacy: dict,
    titles: Dict[str, List[dict]],
) -> Counter:
    """
    Move an original ``studentId`` ledger onto ``student_id``.

    Renamed in place when the student has no current ledger yet; otherwise
    its records are placed ahead of the newer ones and the legacy document
    is removed.
    """
    student_id = str(legacy["studentId"])
    results = legacy.get("results", [])
    records, stats, _ = rekey_results(results, titles)
    stats["ledgers"] += 1

    if not await db[LEDGERS].find_one({"student_id": student_id}, {"_id": 1}):
        renamed = await db[LEDGERS].update_one(
            {"_id": legacy["_id"], "results": {"$size": len(results)}},
            {
                "$set": {"student_id": student_id, "results": records, "attempt_counters": {}},
                "$unset": {"studentId": ""}
            }
        )
        if renamed.modified_count == 1:
            return stats
        logger.warning("Original ledger changed during migration, skipped", extra={"student_id": student_id})
        return Counter(busy=1)

    await ensure_ledger(db, student_id)
    await db[LEDGERS].update_one(
        {"student_id": student_id},
        {
            "$push": {"results": {"$each": records, "$position": 0}},
            "$unset": {"attempt_counters": ""}
        }
    )
    await db[LEDGERS].delete_one({"_id": legacy["_id"]})
    stats["merged"] += 1
    logger.info("Original ledger merged", extra={"student_id": student_id, "records": len(records)})
    return stats


async def migrate_title_keyed_attempts(db: AsyncIOMotorDatabase) -> dict:
    """
    Returns counts: ledgers updated, original ledgers merged into a newer
    one, records keyed, records left untouched because their title matched
    no exam or several exams, and ledgers skipped because they kept changing.
    """
    titles = await build_title_index(db)
    stats = Counter(ledgers=0, merged=0, keyed=0, unmatched=0, ambiguous=0, busy=0)

    originals = await db[LEDGERS].find(
        {"studentId": {"$exists": True}, "student_id": {"$exists": False}}
    ).to_list(length=None)
    for legacy in originals:
        stats.update(await merge_original_ledger(db, legacy, titles))
    moved = [str(legacy["studentId"]) for legacy in originals]

    async for ledger in db[LEDGERS].find({"student_id": {"$exists": True, "$nin": moved}}):
        stats.update(await key_ledger(db, ledger, titles))

    logger.info("Attempt ledger migration finished", extra=dict(stats))
    return dict(stats)


async def _run():
    from examdesk.core.logging import setup_logging
    from examdesk.exams.config import MONGO_DB_NAME, MONGO_URL

    setup_logging()
    client = AsyncIOMotorClient(MONGO_URL)
    try:
        await migrate_title_keyed_attempts(client[MONGO_DB_NAME])
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(_run())
