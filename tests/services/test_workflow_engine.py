"""
Tests for WorkflowEngine -- the document approval lifecycle.

Covers:
- submit(): step-1 task, artifact requirement, workflow resolution errors
- approve(): step advancement, publication after the final step, role
  checks, override roles, double decisions
- reject(): mandatory reason, revision task routed to the author
- resubmit(): re-entry at step 1 with cumulative history
- cancel(): closing the open task, terminal-state guards
"""

from uuid import uuid4

import pytest

from qms_kernel.domain.document import DocumentStatus, HistoryAction
from qms_kernel.domain.results import EngineOperation
from qms_kernel.domain.task import TaskOutcome, TaskStatus, TaskType
from qms_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidWorkflowError,
    MissingArtifactError,
    MissingRejectionReasonError,
    PreconditionFailedError,
    TaskAlreadyClosedError,
    TaskNotFoundError,
    UnauthorizedError,
)


def _open_tasks(task_selector, result):
    return [
        t for t in task_selector.for_document(result.document_id) if t.is_open
    ]


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmit:

    def test_submit_opens_step_one_task(
        self, workflow_engine, create_workflow, create_document, actors, task_selector,
    ):
        workflow = create_workflow(roles=("role_qa", "role_mgr"))
        document = create_document()

        result = workflow_engine.submit(
            document.id, document.current_version_id, workflow.id, actors.author,
        )

        assert result.operation == EngineOperation.SUBMIT
        assert result.document_status == DocumentStatus.PENDING_APPROVAL
        assert result.current_step == 1
        assert result.opened_task.assigned_role_id == "role_qa"
        assert result.opened_task.task_type == TaskType.DOCUMENT_APPROVAL
        assert result.opened_task.title == f"Approval pending: {document.code} (step 1)"
        assert len(_open_tasks(task_selector, result)) == 1

    def test_submit_records_workflow_and_submission_time(
        self, submit_document, document_selector, deterministic_clock,
    ):
        result = submit_document()

        record = document_selector.get(result.document_id)
        assert record.workflow_id is not None
        assert record.status == DocumentStatus.PENDING_APPROVAL
        version = document_selector.get_version(result.version_id)
        assert version.status == DocumentStatus.PENDING_APPROVAL
        assert version.submitted_at is not None

    def test_submit_without_file_raises_missing_artifact(
        self, workflow_engine, create_workflow, create_document, actors, document_selector,
    ):
        workflow = create_workflow()
        document = create_document(file_reference=None)

        with pytest.raises(MissingArtifactError):
            workflow_engine.submit(
                document.id, document.current_version_id, workflow.id, actors.author,
            )

        assert document_selector.get(document.id).status == DocumentStatus.DRAFT

    def test_submit_unknown_workflow_is_invalid(
        self, workflow_engine, create_document, actors,
    ):
        document = create_document()

        with pytest.raises(InvalidWorkflowError):
            workflow_engine.submit(
                document.id, document.current_version_id, uuid4(), actors.author,
            )

    def test_submit_with_other_company_workflow_is_invalid(
        self, workflow_engine, create_workflow, create_document, actors,
    ):
        foreign = create_workflow(company=uuid4())
        document = create_document()

        with pytest.raises(InvalidWorkflowError):
            workflow_engine.submit(
                document.id, document.current_version_id, foreign.id, actors.author,
            )

    def test_submit_with_non_document_workflow_is_invalid(
        self, workflow_engine, create_workflow, create_document, actors,
    ):
        purchasing = create_workflow(module="purchasing")
        document = create_document()

        with pytest.raises(InvalidWorkflowError):
            workflow_engine.submit(
                document.id, document.current_version_id, purchasing.id, actors.author,
            )

    def test_submit_twice_fails_precondition(self, submit_document, workflow_engine, actors, document_selector):
        result = submit_document()
        record = document_selector.get(result.document_id)

        with pytest.raises(PreconditionFailedError) as exc_info:
            workflow_engine.submit(
                result.document_id, result.version_id, record.workflow_id, actors.author,
            )
        assert exc_info.value.current_status == DocumentStatus.PENDING_APPROVAL.value

    def test_submit_unknown_document(self, workflow_engine, create_workflow, actors):
        workflow = create_workflow()

        with pytest.raises(DocumentNotFoundError):
            workflow_engine.submit(uuid4(), uuid4(), workflow.id, actors.author)


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


class TestApprove:

    def test_two_step_approval_publishes(
        self, submit_document, workflow_engine, actors, document_selector, task_selector,
    ):
        submitted = submit_document(roles=("role_qa", "role_mgr"))

        first = workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")
        assert first.document_status == DocumentStatus.PENDING_APPROVAL
        assert first.closed_task.outcome == TaskOutcome.APPROVED
        assert first.opened_task.workflow_step_number == 2
        assert first.opened_task.assigned_role_id == "role_mgr"
        assert len(_open_tasks(task_selector, submitted)) == 1

        second = workflow_engine.approve(first.opened_task.id, actors.manager, "role_mgr")
        assert second.is_published
        assert second.opened_task is None
        assert _open_tasks(task_selector, submitted) == []

        version = document_selector.get_version(submitted.version_id)
        assert version.status == DocumentStatus.PUBLISHED
        assert version.published_at is not None
        assert [h.step_number for h in version.approval_history] == [1, 2]
        assert [h.actor_role for h in version.approval_history] == ["role_qa", "role_mgr"]
        assert all(h.action == HistoryAction.APPROVED for h in version.approval_history)
        assert document_selector.get(submitted.document_id).status == DocumentStatus.PUBLISHED

    def test_single_step_workflow_publishes_on_first_approval(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document(roles=("role_qa",))

        result = workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")

        assert result.is_published
        assert result.history_entry.step_number == 1

    def test_history_sequence_is_increasing(
        self, submit_document, workflow_engine, actors, document_selector,
    ):
        submitted = submit_document(roles=("role_qa", "role_mgr"))
        first = workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")
        workflow_engine.approve(first.opened_task.id, actors.manager, "role_mgr")

        history = document_selector.history(submitted.version_id)
        assert [h.sequence for h in history] == [1, 2]
        assert all(h.recorded_at is not None for h in history)

    def test_history_sequence_is_numbered_per_version(
        self, submit_document, workflow_engine, actors, document_selector,
    ):
        first_doc = submit_document(roles=("role_qa",))
        second_doc = submit_document(roles=("role_qa",))

        workflow_engine.approve(first_doc.opened_task.id, actors.qa, "role_qa")
        workflow_engine.approve(second_doc.opened_task.id, actors.qa, "role_qa")

        assert [h.sequence for h in document_selector.history(first_doc.version_id)] == [1]
        assert [h.sequence for h in document_selector.history(second_doc.version_id)] == [1]

    def test_wrong_role_is_unauthorized_and_task_stays_open(
        self, submit_document, workflow_engine, actors, task_selector,
    ):
        submitted = submit_document()

        with pytest.raises(UnauthorizedError):
            workflow_engine.approve(submitted.opened_task.id, actors.manager, "role_mgr")

        task = task_selector.get(submitted.opened_task.id)
        assert task.status == TaskStatus.OPEN

    def test_claiming_unheld_role_is_unauthorized(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()

        with pytest.raises(UnauthorizedError):
            workflow_engine.approve(submitted.opened_task.id, actors.outsider, "role_qa")

    def test_role_defaults_to_task_role(self, submit_document, workflow_engine, actors):
        submitted = submit_document()

        result = workflow_engine.approve(submitted.opened_task.id, actors.qa, None)

        assert result.history_entry.actor_role == "role_qa"

    def test_override_role_may_approve_any_step(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()

        result = workflow_engine.approve(submitted.opened_task.id, actors.admin, "admin")

        assert result.history_entry.actor_role == "admin"
        assert result.opened_task.workflow_step_number == 2

    def test_double_approval_raises_already_closed(
        self, submit_document, workflow_engine, actors, document_selector,
    ):
        submitted = submit_document()
        task_id = submitted.opened_task.id
        workflow_engine.approve(task_id, actors.qa, "role_qa")

        with pytest.raises(TaskAlreadyClosedError) as exc_info:
            workflow_engine.approve(task_id, actors.qa, "role_qa")

        assert exc_info.value.outcome == TaskOutcome.APPROVED.value
        assert len(document_selector.history(submitted.version_id)) == 1

    def test_double_approval_of_final_step_raises_already_closed(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document(roles=("role_qa",))
        workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")

        with pytest.raises(TaskAlreadyClosedError):
            workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")

    def test_unknown_task(self, workflow_engine, actors):
        with pytest.raises(TaskNotFoundError):
            workflow_engine.approve(uuid4(), actors.qa, "role_qa")

    def test_notes_are_recorded(self, submit_document, workflow_engine, actors):
        submitted = submit_document()

        result = workflow_engine.approve(
            submitted.opened_task.id, actors.qa, "role_qa", notes="  Looks good  ",
        )

        assert result.history_entry.notes == "Looks good"


# ---------------------------------------------------------------------------
# Rejection and resubmission
# ---------------------------------------------------------------------------


class TestRejectAndResubmit:

    @pytest.mark.parametrize("notes", ["", "   ", None])
    def test_reject_requires_reason(
        self, submit_document, workflow_engine, actors, task_selector, notes,
    ):
        submitted = submit_document()

        with pytest.raises(MissingRejectionReasonError):
            workflow_engine.reject(submitted.opened_task.id, actors.qa, "role_qa", notes)

        assert task_selector.get(submitted.opened_task.id).status == TaskStatus.OPEN

    def test_reject_at_step_two_routes_to_author(
        self, submit_document, workflow_engine, actors, document_selector,
    ):
        submitted = submit_document(roles=("role_qa", "role_mgr"))
        first = workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")

        rejected = workflow_engine.reject(
            first.opened_task.id, actors.manager, "role_mgr", "Scope section missing",
        )

        assert rejected.document_status == DocumentStatus.REVISION
        assert rejected.closed_task.outcome == TaskOutcome.REJECTED
        revision = rejected.opened_task
        assert revision.task_type == TaskType.REVISION_REQUEST
        assert revision.is_revision
        assert revision.workflow_step_number == 0
        assert revision.assigned_user_id == actors.author
        assert revision.assigned_role_id is None

        history = document_selector.history(submitted.version_id)
        assert [h.action for h in history] == [HistoryAction.APPROVED, HistoryAction.REJECTED]
        assert history[1].notes == "Scope section missing"
        assert history[1].step_number == 2

    def test_resubmit_reenters_step_one_and_keeps_history(
        self, submit_document, workflow_engine, actors, document_selector,
    ):
        submitted = submit_document(roles=("role_qa", "role_mgr"))
        first = workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")
        rejected = workflow_engine.reject(
            first.opened_task.id, actors.manager, "role_mgr", "Wrong template",
        )

        resubmitted = workflow_engine.resubmit(
            submitted.document_id,
            submitted.version_id,
            actors.author,
            file_reference="dms://files/sop-calibration-r2.pdf",
            revision_notes="Moved to the current template",
        )

        assert resubmitted.operation == EngineOperation.RESUBMIT
        assert resubmitted.document_status == DocumentStatus.PENDING_APPROVAL
        assert resubmitted.closed_task.id == rejected.opened_task.id
        assert resubmitted.closed_task.outcome == TaskOutcome.RESUBMITTED
        assert resubmitted.opened_task.workflow_step_number == 1
        assert resubmitted.opened_task.assigned_role_id == "role_qa"

        version = document_selector.get_version(submitted.version_id)
        assert version.file_reference == "dms://files/sop-calibration-r2.pdf"
        assert version.revision_notes == "Moved to the current template"
        assert len(version.approval_history) == 2

        again = workflow_engine.approve(resubmitted.opened_task.id, actors.qa, "role_qa")
        final = workflow_engine.approve(again.opened_task.id, actors.manager, "role_mgr")
        assert final.is_published
        history = document_selector.history(submitted.version_id)
        assert [h.step_number for h in history] == [1, 2, 1, 2]

    def test_resubmit_by_someone_else_is_unauthorized(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()
        workflow_engine.reject(submitted.opened_task.id, actors.qa, "role_qa", "Typos")

        with pytest.raises(UnauthorizedError):
            workflow_engine.resubmit(submitted.document_id, submitted.version_id, actors.qa)

    def test_resubmit_outside_revision_fails_precondition(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()

        with pytest.raises(PreconditionFailedError):
            workflow_engine.resubmit(submitted.document_id, submitted.version_id, actors.author)

    def test_revision_task_cannot_be_approved(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()
        rejected = workflow_engine.reject(
            submitted.opened_task.id, actors.qa, "role_qa", "Missing signature block",
        )

        with pytest.raises(PreconditionFailedError):
            workflow_engine.approve(rejected.opened_task.id, actors.admin, "admin")

    def test_reject_of_closed_task_raises_already_closed(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()
        workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")

        with pytest.raises(TaskAlreadyClosedError):
            workflow_engine.reject(submitted.opened_task.id, actors.qa, "role_qa", "Late")


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancel:

    def test_cancel_pending_document_closes_open_task(
        self, submit_document, workflow_engine, actors, task_selector,
    ):
        submitted = submit_document()

        result = workflow_engine.cancel(submitted.document_id, actors.admin, reason="Superseded")

        assert result.document_status == DocumentStatus.CANCELED
        assert result.closed_task.id == submitted.opened_task.id
        assert result.closed_task.outcome == TaskOutcome.CANCELED
        assert _open_tasks(task_selector, submitted) == []

    def test_cancel_draft_has_no_task_to_close(self, create_document, workflow_engine, actors):
        document = create_document()

        result = workflow_engine.cancel(document.id, actors.admin)

        assert result.document_status == DocumentStatus.CANCELED
        assert result.closed_task is None

    def test_cancel_during_revision_closes_revision_task(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()
        rejected = workflow_engine.reject(
            submitted.opened_task.id, actors.qa, "role_qa", "Not needed",
        )

        result = workflow_engine.cancel(submitted.document_id, actors.admin)

        assert result.closed_task.id == rejected.opened_task.id

    def test_decision_after_cancel_fails_precondition(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document()
        workflow_engine.cancel(submitted.document_id, actors.admin)

        with pytest.raises(PreconditionFailedError) as exc_info:
            workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")
        assert exc_info.value.current_status == DocumentStatus.CANCELED.value

    def test_cancel_requires_cancel_role(self, submit_document, workflow_engine, actors):
        submitted = submit_document()

        with pytest.raises(UnauthorizedError):
            workflow_engine.cancel(submitted.document_id, actors.author)

    def test_published_document_cannot_be_canceled(
        self, submit_document, workflow_engine, actors,
    ):
        submitted = submit_document(roles=("role_qa",))
        workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")

        with pytest.raises(PreconditionFailedError):
            workflow_engine.cancel(submitted.document_id, actors.admin)

    def test_canceled_document_cannot_be_canceled_again(
        self, create_document, workflow_engine, actors,
    ):
        document = create_document()
        workflow_engine.cancel(document.id, actors.admin)

        with pytest.raises(PreconditionFailedError):
            workflow_engine.cancel(document.id, actors.admin)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class TestEngineAudit:

    def test_full_cycle_leaves_valid_chain(
        self, submit_document, workflow_engine, actors, auditor_service,
    ):
        submitted = submit_document()
        first = workflow_engine.approve(submitted.opened_task.id, actors.qa, "role_qa")
        workflow_engine.approve(first.opened_task.id, actors.manager, "role_mgr")

        assert auditor_service.validate_chain() is True

        trace = auditor_service.get_trace("Document", submitted.document_id)
        assert [a.value for a in trace.actions] == [
            "document_created",
            "document_submitted",
            "step_approved",
            "step_approved",
            "document_published",
        ]

    def test_failed_operation_writes_nothing(
        self, submit_document, workflow_engine, actors, auditor_service,
    ):
        submitted = submit_document()
        before = auditor_service.get_trace("Document", submitted.document_id)

        with pytest.raises(UnauthorizedError):
            workflow_engine.approve(submitted.opened_task.id, actors.outsider, None)

        after = auditor_service.get_trace("Document", submitted.document_id)
        assert after.actions == before.actions
