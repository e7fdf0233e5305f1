"""Tests for the structured logging system (qms_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from qms_kernel.exceptions import TaskAlreadyClosedError, UnauthorizedError
from qms_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def _clean_logging():
    """Reset logging state around tests that configure it themselves."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("_clean_logging")
class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["logger"] == "qms_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("task_opened", extra={"step_number": 2})

        assert _parse_log(stream)["step_number"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        document_id = uuid4()

        with LogContext.bind(document_id=document_id, actor_id="u-1"):
            get_logger("test").info("inside")

        record = _parse_log(stream)
        assert record["document_id"] == str(document_id)
        assert record["actor_id"] == "u-1"

    def test_kernel_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        try:
            raise TaskAlreadyClosedError("t-1", "approved")
        except TaskAlreadyClosedError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "TaskAlreadyClosedError"
        assert record["exc_code"] == "TASK_ALREADY_CLOSED"
        assert record["exc_task_id"] == "t-1"
        assert record["exc_outcome"] == "approved"

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        value = uuid4()
        get_logger("test").info("uuid", extra={"entity_id": value})

        assert _parse_log(stream)["entity_id"] == str(value)

    def test_configure_is_idempotent(self):
        logger = logging.getLogger("qms_kernel")
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        attached = list(logger.handlers)

        configure_logging(handler=handler)
        configure_logging(level=logging.DEBUG)

        assert logger.handlers == attached
        assert logger.handlers.count(handler) == 1
        get_logger("test").info("once")
        assert len(stream.getvalue().strip().split("\n")) == 1


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(actor_id="a", company_id="c")

        assert LogContext.get_all() == {"actor_id": "a", "company_id": "c"}

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")

        with LogContext.bind(actor_id="inner", task_id="t"):
            assert LogContext.get_all()["actor_id"] == "inner"

        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_set_inside_bind_is_undone(self):
        with LogContext.bind(actor_id="a"):
            LogContext.set(company_id="c")
            assert LogContext.get_all()["company_id"] == "c"

        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# Engine logging
# ---------------------------------------------------------------------------


class TestEngineLogs:

    def test_submit_logs_with_document_context(self, captured_logs, submit_document):
        submitted = submit_document()

        logs = captured_logs()
        submitted_lines = [r for r in logs if r["message"] == "document_submitted"]
        assert len(submitted_lines) == 1
        assert submitted_lines[0]["document_id"] == str(submitted.document_id)
        assert "company_id" in submitted_lines[0]
        assert LogContext.get_all() == {}

    def test_rejected_decision_is_logged(self, captured_logs, submit_document, workflow_engine, actors):
        submitted = submit_document()

        with pytest.raises(UnauthorizedError):
            workflow_engine.approve(submitted.opened_task.id, actors.outsider, None)

        assert any(r["message"] == "decision_unauthorized" for r in captured_logs())

    def test_workflow_created_at_info_level(
        self, captured_logs, workflow_service, company_id, test_actor_id,
    ):
        logger = logging.getLogger("qms_kernel")
        previous = logger.level
        logger.setLevel(logging.INFO)
        try:
            workflow = workflow_service.create_workflow(
                company_id,
                "W",
                "documents",
                [("QA", "role_qa"), ("Mgr", "role_mgr")],
                test_actor_id,
            )
        finally:
            logger.setLevel(previous)

        created = [r for r in captured_logs() if r["message"] == "workflow_created"]
        assert len(created) == 1
        assert created[0]["workflow_id"] == str(workflow.id)
        assert created[0]["workflow_module"] == "documents"
        assert created[0]["step_count"] == 2
