import pytest

from examdesk.exams.database import (
    append_attempt_guarded,
    count_exam_attempts,
    counter_key,
    create_indexes,
    ensure_ledger,
    get_student_ledger,
)
from examdesk.exams.errors import AttemptConflict
from examdesk.exams.models import Exam
from examdesk.exams.recorder import record_attempt
from examdesk.exams.scoring import score_submission
from factories import STUDENT_ID, make_exam, make_record


@pytest.fixture
def exam():
    return Exam(**make_exam("EXAM_R", num_questions=4))


def scored(exam, answers=None):
    return score_submission(exam.questions, answers or {}, exam.passing_score)


async def test_first_attempt_creates_ledger(db, exam):
    record = await record_attempt(db, STUDENT_ID, exam, scored(exam, {"Q1": "b"}), 42, prior_count=0)

    ledger = await get_student_ledger(db, STUDENT_ID)
    assert record.attempt_number == 1
    assert ledger["attempt_counters"] == {"EXAM_R": 1}
    assert len(ledger["results"]) == 1
    stored = ledger["results"][0]
    assert stored["exam_id"] == "EXAM_R"
    assert stored["exam_title"] == "Exam EXAM_R"
    assert stored["correct_answers"] == 1
    assert stored["total_questions"] == 4
    assert stored["percentage"] == 25
    assert stored["time_spent"] == 42
    assert stored["result_id"] == record.result_id


async def test_sequential_attempts_are_contiguous(db, exam):
    other = Exam(**make_exam("EXAM_OTHER"))
    for expected in range(1, 5):
        prior = count_exam_attempts(await get_student_ledger(db, STUDENT_ID), exam.exam_id)
        record = await record_attempt(db, STUDENT_ID, exam, scored(exam), 0, prior)
        assert record.attempt_number == expected

        # attempts on another exam keep their own sequence
        prior_other = count_exam_attempts(await get_student_ledger(db, STUDENT_ID), other.exam_id)
        await record_attempt(db, STUDENT_ID, other, scored(other), 0, prior_other)

    ledger = await get_student_ledger(db, STUDENT_ID)
    numbers = [r["attempt_number"] for r in ledger["results"] if r["exam_id"] == "EXAM_R"]
    assert numbers == [1, 2, 3, 4]
    assert ledger["attempt_counters"] == {"EXAM_R": 4, "EXAM_OTHER": 4}


async def test_stale_prior_count_conflicts(db, exam):
    await record_attempt(db, STUDENT_ID, exam, scored(exam), 0, prior_count=0)

    with pytest.raises(AttemptConflict) as exc_info:
        await record_attempt(db, STUDENT_ID, exam, scored(exam), 0, prior_count=0)

    assert exc_info.value.status_code == 409
    ledger = await get_student_ledger(db, STUDENT_ID)
    assert [r["attempt_number"] for r in ledger["results"]] == [1]


async def test_legacy_ledger_without_counters_accepts_append(db, exam, seed_ledger):
    await seed_ledger([make_record("EXAM_R", 1), make_record("EXAM_R", 2)])

    prior = count_exam_attempts(await get_student_ledger(db, STUDENT_ID), exam.exam_id)
    record = await record_attempt(db, STUDENT_ID, exam, scored(exam), 0, prior)

    assert record.attempt_number == 3
    ledger = await get_student_ledger(db, STUDENT_ID)
    assert ledger["attempt_counters"] == {"EXAM_R": 3}


async def test_guard_rejects_second_writer_on_legacy_ledger(db, seed_ledger):
    await seed_ledger([make_record("EXAM_R", 1)])

    assert await append_attempt_guarded(db, STUDENT_ID, "EXAM_R", make_record("EXAM_R", 2), 1)
    assert not await append_attempt_guarded(db, STUDENT_ID, "EXAM_R", make_record("EXAM_R", 2), 1)


async def test_ensure_ledger_is_idempotent(db):
    await create_indexes(db)
    await ensure_ledger(db, STUDENT_ID)
    await ensure_ledger(db, STUDENT_ID)

    assert await db.student_exam_results.count_documents({"student_id": STUDENT_ID}) == 1


def test_count_ignores_other_exams_and_legacy_records():
    ledger = {"results": [make_record("A", 1), make_record("B", 1), make_record(None, 1), make_record("A", 2)]}
    assert count_exam_attempts(ledger, "A") == 2
    assert count_exam_attempts(None, "A") == 0


def test_count_falls_back_to_title_for_records_without_exam_id():
    ledger = {"results": [
        make_record(None, 1, exam_title="Algebra"),
        make_record("A", 2, exam_title="Algebra"),
        make_record("B", 1, exam_title="Algebra"),
        make_record(None, 1, exam_title="Geometry"),
    ]}
    assert count_exam_attempts(ledger, "A", "Algebra") == 2
    assert count_exam_attempts(ledger, "B", "Algebra") == 2
    assert count_exam_attempts(ledger, "C", "History") == 0


async def test_title_only_records_accept_append_with_combined_count(db, exam, seed_ledger):
    await seed_ledger([make_record(None, 1, exam_title=exam.title)])

    prior = count_exam_attempts(await get_student_ledger(db, STUDENT_ID), exam.exam_id, exam.title)
    record = await record_attempt(db, STUDENT_ID, exam, scored(exam), 0, prior)

    assert record.attempt_number == 2
    ledger = await get_student_ledger(db, STUDENT_ID)
    assert ledger["attempt_counters"] == {"EXAM_R": 2}
    assert count_exam_attempts(ledger, exam.exam_id, exam.title) == 2


def test_counter_keys_do_not_collide():
    ids = ["a_b", "a.b", "a$b", "a%2Eb", "a%b", "plain"]
    keys = [counter_key(i) for i in ids]
    assert len(set(keys)) == len(ids)
    assert not any("." in k or "$" in k for k in keys)
    assert counter_key("EXAM_1") == "EXAM_1"
