import io
import json
import logging

import pytest
from pythonjsonlogger.json import JsonFormatter

from examdesk import main
from examdesk.core.logging import ExamJsonFormatter, setup_logging


@pytest.fixture
def root_logger():
    """Restore the root logger after ``setup_logging`` replaced its handlers."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


async def test_startup_creates_indexes(monkeypatch):
    calls = []

    async def fake_create_indexes(db):
        calls.append(db)

    monkeypatch.setattr(main, "create_indexes", fake_create_indexes)

    async with main.lifespan(main.app):
        assert calls == [main.db]


def test_log_lines_are_json(root_logger):
    setup_logging()
    handler = root_logger.handlers[0]
    stream = io.StringIO()
    handler.setStream(stream)

    logging.getLogger("examdesk.exams.exam_service").info(
        "Exam submitted", extra={"exam_id": "EXAM_1", "attempt_number": 2}
    )

    line = json.loads(stream.getvalue().strip())
    assert isinstance(handler.formatter, ExamJsonFormatter)
    assert isinstance(handler.formatter, JsonFormatter)
    assert line["message"] == "Exam submitted"
    assert line["level"] == "INFO"
    assert line["logger"] == "examdesk.exams.exam_service"
    assert line["function"] == "test_log_lines_are_json"
    assert line["exam_id"] == "EXAM_1"
    assert line["attempt_number"] == 2
    assert line["timestamp"]
