"""
Tests for TaskService -- the task ledger.

Covers:
- close_task(): conditional close, outcome, closed_by, double close
- the one-open-task-per-version index
- get_open_task() / list_tasks()
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from qms_kernel.domain.task import TaskOutcome, TaskStatus
from qms_kernel.domain.workflow import WorkflowStep
from qms_kernel.exceptions import TaskAlreadyClosedError, TaskNotFoundError
from qms_kernel.models.document import DocumentModel, DocumentVersionModel


@pytest.fixture
def draft_models(session, create_document):
    record = create_document()
    document = session.get(DocumentModel, record.id)
    version = session.get(DocumentVersionModel, record.current_version_id)
    return document, version


STEP_ONE = WorkflowStep(step_number=1, step_name="Review", required_role="role_qa")
STEP_TWO = WorkflowStep(step_number=2, step_name="Sign-off", required_role="role_mgr")


class TestCloseTask:

    def test_close_sets_outcome_and_closer(
        self, task_service, draft_models, actors, deterministic_clock,
    ):
        document, version = draft_models
        task = task_service.open_approval_task(document, version, STEP_ONE, actors.author)

        closed = task_service.close_task(task.id, TaskOutcome.APPROVED, actors.qa)

        assert closed.status == TaskStatus.CLOSED.value
        assert closed.outcome == TaskOutcome.APPROVED.value
        assert closed.closed_by_id == actors.qa
        assert closed.closed_at is not None

    def test_second_close_raises_already_closed(self, task_service, draft_models, actors):
        document, version = draft_models
        task = task_service.open_approval_task(document, version, STEP_ONE, actors.author)
        task_service.close_task(task.id, TaskOutcome.REJECTED, actors.qa)

        with pytest.raises(TaskAlreadyClosedError) as exc_info:
            task_service.close_task(task.id, TaskOutcome.APPROVED, actors.qa)
        assert exc_info.value.outcome == TaskOutcome.REJECTED.value

    def test_close_unknown_task(self, task_service, actors):
        with pytest.raises(TaskNotFoundError):
            task_service.close_task(uuid4(), TaskOutcome.APPROVED, actors.qa)


class TestOneOpenTaskPerVersion:

    def test_second_open_task_refused(self, session, task_service, draft_models, actors):
        document, version = draft_models
        task_service.open_approval_task(document, version, STEP_ONE, actors.author)

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                task_service.open_approval_task(document, version, STEP_TWO, actors.author)

    def test_successor_allowed_after_close(self, task_service, draft_models, actors):
        document, version = draft_models
        first = task_service.open_approval_task(document, version, STEP_ONE, actors.author)
        task_service.close_task(first.id, TaskOutcome.APPROVED, actors.qa)

        second = task_service.open_approval_task(document, version, STEP_TWO, actors.qa)

        assert task_service.get_open_task(document.id, version.id).id == second.id
        assert len(task_service.list_tasks(document.id)) == 2

    def test_revision_task_assigned_to_author(self, task_service, draft_models, actors):
        document, version = draft_models

        task = task_service.open_revision_task(document, version, actors.qa)

        assert task.assigned_user_id == actors.author
        assert task.assigned_role_id is None
        assert task.workflow_step_number == 0
        assert task.title == f"Revision required: {document.code}"
