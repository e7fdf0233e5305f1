"""
WorkflowEngine -- submission, approval, rejection, resubmission and
cancellation of controlled documents.

Responsibility:
    Moves a document version through its workflow: opens the step-1 task on
    submission, advances strictly step by step on approval, routes a
    rejection back to the version's author, re-enters step 1 on
    resubmission, and publishes after the final step.  The engine is the
    only writer of document/version ``status``.

Architecture position:
    Kernel > Services -- imperative shell coordinator.  Reads definitions
    through WorkflowDefinitionService, writes tasks through TaskService,
    consults an AuthorizationGate, records AuditEvents.

Invariants enforced:
    - At most one OPEN task per document version.  Every decision closes
      the current task before any successor is opened.
    - Single writer per step: the document row is locked
      (``SELECT ... FOR UPDATE``) and the task is closed with a conditional
      UPDATE; a concurrent second decision observes TaskAlreadyClosedError.
    - Atomicity: each operation runs in a SAVEPOINT.  Any failure rolls
      back every write of that operation; nothing is half-advanced.
    - Steps advance by exactly +1 (``WorkflowDefinition.next_step``).
    - Approval history is append-only.  Its sequence is numbered per
      version while the document row is locked, so it is decision order;
      timestamps come from the database.
    - Authorization is never downgraded to a no-op: UnauthorizedError is
      distinct from TaskAlreadyClosedError.

Failure modes:
    - InvalidWorkflowError, MissingArtifactError (submit / resubmit).
    - TaskNotFoundError, TaskAlreadyClosedError (approve / reject).
    - MissingRejectionReasonError (reject).
    - WorkflowNotFoundError (definition vanished mid-flight).
    - UnauthorizedError (gate refused the actor).
    - PreconditionFailedError (wrong document status, including CANCELED).

Audit relevance:
    Every state change produces a hash-chained AuditEvent plus, for
    decisions, an approval-history entry on the version.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from qms_kernel.domain.authorization import AuthorizationGate
from qms_kernel.domain.clock import Clock, SystemClock
from qms_kernel.domain.document import (
    DocumentStatus,
    HistoryAction,
    can_transition,
)
from qms_kernel.domain.results import EngineOperation, EngineResult
from qms_kernel.domain.task import TaskOutcome, TaskStatus, TaskType
from qms_kernel.domain.workflow import DOCUMENTS_MODULE, WorkflowDefinition
from qms_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidWorkflowError,
    MissingArtifactError,
    MissingRejectionReasonError,
    PreconditionFailedError,
    TaskAlreadyClosedError,
    UnauthorizedError,
    VersionNotFoundError,
    WorkflowNotFoundError,
)
from qms_kernel.logging_config import LogContext, get_logger
from qms_kernel.models.approval_history import ApprovalHistoryEntryModel
from qms_kernel.models.document import DocumentModel, DocumentVersionModel
from qms_kernel.models.task import TaskModel
from qms_kernel.services.auditor_service import AuditorService
from qms_kernel.services.task_service import TaskService
from qms_kernel.services.workflow_definition_service import WorkflowDefinitionService

logger = get_logger("services.workflow_engine")

_CANCELABLE = (
    DocumentStatus.DRAFT,
    DocumentStatus.PENDING_APPROVAL,
    DocumentStatus.REVISION,
)


class WorkflowEngine:
    """
    Drives documents through their approval workflow.

    Contract:
        One engine per session.  Callers own the outer transaction
        (``session_scope()``); every public method runs inside a savepoint
        and returns an EngineResult snapshot.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT resolve or cache role membership; the gate decides.
    """

    def __init__(
        self,
        session: Session,
        gate: AuthorizationGate,
        clock: Clock | None = None,
        workflows: WorkflowDefinitionService | None = None,
        cancel_role: str = "admin",
        document_module: str = DOCUMENTS_MODULE,
    ):
        self._session = session
        self._gate = gate
        self._clock = clock or SystemClock()
        self._auditor = AuditorService(session, self._clock)
        self._tasks = TaskService(session, self._auditor, self._clock)
        self._workflows = workflows or WorkflowDefinitionService(
            session, self._auditor, self._clock,
        )
        self._cancel_role = cancel_role
        self._document_module = document_module

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        document_id: UUID,
        version_id: UUID,
        workflow_id: UUID,
        author_id: UUID,
    ) -> EngineResult:
        """
        Submit a DRAFT version into ``workflow_id`` at step 1.

        Postconditions:
            - Document and version are PENDING_APPROVAL.
            - Exactly one OPEN task exists, for step 1, assigned to the
              step's required role.

        Raises:
            PreconditionFailedError: Document is not DRAFT.
            InvalidWorkflowError: Definition missing, empty, foreign to the
                company, or not a document workflow.
            MissingArtifactError: No file reference on the version.
        """
        with LogContext.bind(actor_id=author_id, document_id=document_id):
            with self._session.begin_nested():
                document = self._lock_document(document_id)
                LogContext.set(company_id=str(document.company_id))
                version = self._load_version(document, version_id)
                self._require_status(document, "submit", (DocumentStatus.DRAFT,))

                workflow = self._resolve_submission_workflow(document, workflow_id)
                self._require_artifact(document, version)

                document.workflow_id = workflow.id
                document.current_version_id = version.id
                opened = self._enter_first_step(document, version, workflow, author_id)

                self._auditor.record_document_submitted(
                    document_id=document.id,
                    version_id=version.id,
                    workflow_id=workflow.id,
                    actor_id=author_id,
                )

            logger.info(
                "document_submitted",
                extra={
                    "version_id": str(version.id),
                    "workflow_id": str(workflow.id),
                    "step_count": workflow.step_count,
                },
            )
            return EngineResult(
                operation=EngineOperation.SUBMIT,
                document_id=document.id,
                version_id=version.id,
                document_status=DocumentStatus(document.status),
                opened_task=opened.to_dto(),
            )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def approve(
        self,
        task_id: UUID,
        actor_id: UUID,
        actor_role: str | None,
        notes: str | None = None,
    ) -> EngineResult:
        """
        Approve the step ``task_id`` stands for.

        Postconditions:
            - The task is CLOSED (outcome approved) and an APPROVED entry is
              appended to the version's history.
            - If the workflow has a next step, exactly one OPEN task exists
              for it and the document stays PENDING_APPROVAL; otherwise the
              document and version are PUBLISHED.

        Raises:
            TaskNotFoundError, TaskAlreadyClosedError, UnauthorizedError,
            PreconditionFailedError, WorkflowNotFoundError.
        """
        return self._decide(
            task_id, actor_id, actor_role, (notes or "").strip(), HistoryAction.APPROVED,
        )

    def reject(
        self,
        task_id: UUID,
        actor_id: UUID,
        actor_role: str | None,
        notes: str,
    ) -> EngineResult:
        """
        Reject the step ``task_id`` stands for and return the version to
        its author.

        Postconditions:
            - The task is CLOSED (outcome rejected); a REJECTED entry with
              ``notes`` is appended to the version's history.
            - Document and version are REVISION; exactly one OPEN revision
              task exists, assigned to the version's author, step 0.

        Raises:
            MissingRejectionReasonError: ``notes`` is blank.
            TaskNotFoundError, TaskAlreadyClosedError, UnauthorizedError,
            PreconditionFailedError, WorkflowNotFoundError.
        """
        if notes is None or not notes.strip():
            raise MissingRejectionReasonError(str(task_id))
        return self._decide(
            task_id, actor_id, actor_role, notes.strip(), HistoryAction.REJECTED,
        )

    def _decide(
        self,
        task_id: UUID,
        actor_id: UUID,
        actor_role: str | None,
        notes: str,
        action: HistoryAction,
    ) -> EngineResult:
        operation = (
            EngineOperation.APPROVE
            if action == HistoryAction.APPROVED
            else EngineOperation.REJECT
        )
        with LogContext.bind(actor_id=actor_id, task_id=task_id):
            with self._session.begin_nested():
                task = self._tasks.get_task(task_id)
                document = self._lock_document(task.document_id)
                LogContext.set(
                    company_id=str(document.company_id),
                    document_id=str(document.id),
                )
                # Re-read under the document lock; a concurrent decider may
                # have closed it while we waited.
                task = self._tasks.get_task(task_id, refresh=True)

                if document.status == DocumentStatus.CANCELED.value:
                    self._require_status(
                        document, operation.value, (DocumentStatus.PENDING_APPROVAL,),
                    )
                if task.status == TaskStatus.CLOSED.value:
                    logger.warning(
                        "task_already_closed", extra={"outcome": task.outcome},
                    )
                    raise TaskAlreadyClosedError(str(task_id), task.outcome)
                self._require_status(
                    document, operation.value, (DocumentStatus.PENDING_APPROVAL,),
                )
                if task.task_type != TaskType.DOCUMENT_APPROVAL.value:
                    raise PreconditionFailedError(
                        document_id=str(document.id),
                        operation=operation.value,
                        current_status=document.status,
                        expected_statuses=(DocumentStatus.PENDING_APPROVAL.value,),
                    )

                acting_role = self._authorize_decision(
                    task, actor_id, actor_role, operation.value,
                )
                version = self._load_version(document, task.version_id)
                workflow = self._load_flight_workflow(document)
                step_number = task.workflow_step_number

                outcome = (
                    TaskOutcome.APPROVED
                    if action == HistoryAction.APPROVED
                    else TaskOutcome.REJECTED
                )
                closed = self._tasks.close_task(task_id, outcome, actor_id)

                entry = self._append_history(
                    document, version, closed, action, actor_id, acting_role, notes,
                )

                opened: TaskModel | None = None
                if action == HistoryAction.APPROVED:
                    self._auditor.record_step_approved(
                        document_id=document.id,
                        version_id=version.id,
                        step_number=step_number,
                        actor_role=acting_role,
                        actor_id=actor_id,
                    )
                    next_step = workflow.next_step(step_number)
                    if next_step is not None:
                        opened = self._tasks.open_approval_task(
                            document, version, next_step, actor_id,
                        )
                    else:
                        self._transition(document, version, DocumentStatus.PUBLISHED)
                        version.published_at = self._clock.now()
                        self._auditor.record_document_published(
                            document_id=document.id,
                            version_id=version.id,
                            actor_id=actor_id,
                        )
                else:
                    self._transition(document, version, DocumentStatus.REVISION)
                    opened = self._tasks.open_revision_task(document, version, actor_id)
                    self._auditor.record_document_rejected(
                        document_id=document.id,
                        version_id=version.id,
                        step_number=step_number,
                        reason=notes,
                        actor_id=actor_id,
                    )
                self._session.flush()

            logger.info(
                "step_approved" if action == HistoryAction.APPROVED else "document_rejected",
                extra={
                    "step_number": step_number,
                    "actor_role": acting_role,
                    "document_status": document.status,
                    "next_task_id": str(opened.id) if opened is not None else None,
                },
            )
            if document.status == DocumentStatus.PUBLISHED.value:
                logger.info("document_published", extra={"version_id": str(version.id)})

            return EngineResult(
                operation=operation,
                document_id=document.id,
                version_id=version.id,
                document_status=DocumentStatus(document.status),
                closed_task=closed.to_dto(),
                opened_task=opened.to_dto() if opened is not None else None,
                history_entry=entry.to_dto(),
            )

    # ------------------------------------------------------------------
    # Resubmission
    # ------------------------------------------------------------------

    def resubmit(
        self,
        document_id: UUID,
        version_id: UUID,
        author_id: UUID,
        file_reference: str | None = None,
        revision_notes: str | None = None,
    ) -> EngineResult:
        """
        Send a version in REVISION back into its workflow at step 1.

        The approval history is cumulative and is not reset.

        Raises:
            PreconditionFailedError: Document is not REVISION.
            UnauthorizedError: Caller does not hold the open revision task.
            InvalidWorkflowError, MissingArtifactError: As for submit.
        """
        with LogContext.bind(actor_id=author_id, document_id=document_id):
            with self._session.begin_nested():
                document = self._lock_document(document_id)
                LogContext.set(company_id=str(document.company_id))
                version = self._load_version(document, version_id)
                self._require_status(document, "resubmit", (DocumentStatus.REVISION,))

                revision_task = self._tasks.get_open_task(document.id, version.id)
                if (
                    revision_task is None
                    or revision_task.task_type != TaskType.REVISION_REQUEST.value
                    or revision_task.assigned_user_id != author_id
                ):
                    logger.warning("resubmit_unauthorized")
                    raise UnauthorizedError(str(author_id), None, "resubmit document")

                workflow = self._resolve_submission_workflow(document, document.workflow_id)
                if file_reference is not None:
                    version.file_reference = file_reference
                if revision_notes is not None:
                    version.revision_notes = revision_notes
                version.updated_by_id = author_id
                self._require_artifact(document, version)

                closed = self._tasks.close_task(
                    revision_task.id, TaskOutcome.RESUBMITTED, author_id,
                )
                opened = self._enter_first_step(document, version, workflow, author_id)

                self._auditor.record_document_resubmitted(
                    document_id=document.id,
                    version_id=version.id,
                    actor_id=author_id,
                )

            logger.info(
                "document_resubmitted",
                extra={"version_id": str(version.id), "workflow_id": str(workflow.id)},
            )
            return EngineResult(
                operation=EngineOperation.RESUBMIT,
                document_id=document.id,
                version_id=version.id,
                document_status=DocumentStatus(document.status),
                closed_task=closed.to_dto(),
                opened_task=opened.to_dto(),
            )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, document_id: UUID, actor_id: UUID, reason: str = "") -> EngineResult:
        """
        Move a non-terminal document to CANCELED.

        Closes the open task (if any) with outcome canceled.

        Raises:
            PreconditionFailedError: Document is PUBLISHED or CANCELED.
            UnauthorizedError: Actor lacks the cancel role.
        """
        with LogContext.bind(actor_id=actor_id, document_id=document_id):
            with self._session.begin_nested():
                document = self._lock_document(document_id)
                LogContext.set(company_id=str(document.company_id))
                self._require_status(document, "cancel", _CANCELABLE)
                if not self._gate.has_role(actor_id, self._cancel_role, document.company_id):
                    logger.warning("cancel_unauthorized", extra={"role_id": self._cancel_role})
                    raise UnauthorizedError(str(actor_id), self._cancel_role, "cancel document")

                version = self._load_version(document, document.current_version_id)
                previous_status = document.status

                closed = None
                open_task = self._tasks.get_open_task(document.id, version.id)
                if open_task is not None:
                    closed = self._tasks.close_task(
                        open_task.id, TaskOutcome.CANCELED, actor_id,
                    )

                self._transition(document, version, DocumentStatus.CANCELED)
                document.updated_by_id = actor_id
                self._auditor.record_document_canceled(
                    document_id=document.id,
                    previous_status=previous_status,
                    reason=reason,
                    actor_id=actor_id,
                )
                self._session.flush()

            logger.info(
                "document_canceled",
                extra={"previous_status": previous_status, "reason": reason},
            )
            return EngineResult(
                operation=EngineOperation.CANCEL,
                document_id=document.id,
                version_id=version.id,
                document_status=DocumentStatus.CANCELED,
                closed_task=closed.to_dto() if closed is not None else None,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_document(self, document_id: UUID) -> DocumentModel:
        document = self._session.execute(
            select(DocumentModel)
            .where(DocumentModel.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def _load_version(
        self,
        document: DocumentModel,
        version_id: UUID | None,
    ) -> DocumentVersionModel:
        version = (
            self._session.get(DocumentVersionModel, version_id, populate_existing=True)
            if version_id is not None
            else None
        )
        if version is None or version.document_id != document.id:
            raise VersionNotFoundError(str(version_id), str(document.id))
        return version

    @staticmethod
    def _require_status(
        document: DocumentModel,
        operation: str,
        allowed: tuple[DocumentStatus, ...],
    ) -> None:
        if document.status not in {s.value for s in allowed}:
            logger.warning(
                "precondition_failed",
                extra={"operation": operation, "current_status": document.status},
            )
            raise PreconditionFailedError(
                document_id=str(document.id),
                operation=operation,
                current_status=document.status,
                expected_statuses=tuple(s.value for s in allowed),
            )

    @staticmethod
    def _require_artifact(document: DocumentModel, version: DocumentVersionModel) -> None:
        if not version.file_reference or not version.file_reference.strip():
            raise MissingArtifactError(str(document.id), str(version.id))

    def _resolve_submission_workflow(
        self,
        document: DocumentModel,
        workflow_id: UUID | None,
    ) -> WorkflowDefinition:
        if workflow_id is None:
            raise InvalidWorkflowError(None, "no workflow selected")
        try:
            workflow = self._workflows.get_workflow(workflow_id, lock_shared=True)
        except WorkflowNotFoundError as exc:
            raise InvalidWorkflowError(str(workflow_id), "workflow not found") from exc

        if workflow.company_id != document.company_id:
            raise InvalidWorkflowError(
                str(workflow_id), "workflow belongs to another company",
            )
        if workflow.module != self._document_module:
            raise InvalidWorkflowError(
                str(workflow_id),
                f"workflow module is {workflow.module!r}, "
                f"expected {self._document_module!r}",
            )
        return workflow

    def _load_flight_workflow(self, document: DocumentModel) -> WorkflowDefinition:
        if document.workflow_id is None:
            raise WorkflowNotFoundError("None")
        return self._workflows.get_workflow(document.workflow_id)

    def _enter_first_step(
        self,
        document: DocumentModel,
        version: DocumentVersionModel,
        workflow: WorkflowDefinition,
        actor_id: UUID,
    ) -> TaskModel:
        self._transition(document, version, DocumentStatus.PENDING_APPROVAL)
        version.submitted_at = self._clock.now()
        self._session.flush()
        return self._tasks.open_approval_task(
            document, version, workflow.first_step(), actor_id,
        )

    def _transition(
        self,
        document: DocumentModel,
        version: DocumentVersionModel,
        target: DocumentStatus,
    ) -> None:
        current = DocumentStatus(document.status)
        if not can_transition(current, target):
            raise PreconditionFailedError(
                document_id=str(document.id),
                operation=f"move to {target.value}",
                current_status=current.value,
                expected_statuses=tuple(
                    s.value for s in DocumentStatus if can_transition(s, target)
                ),
            )
        document.status = target.value
        version.status = target.value

    def _authorize_decision(
        self,
        task: TaskModel,
        actor_id: UUID,
        actor_role: str | None,
        operation: str,
    ) -> str:
        """Return the role the decision is recorded under.

        The claimed role must be held by the actor, and must be the task's
        role unless the actor holds an override role.
        """
        required = task.assigned_role_id
        claimed = actor_role or required
        allowed = self._gate.has_role(actor_id, claimed, task.company_id) and (
            claimed == required or self._gate.is_override(actor_id, task.company_id)
        )
        if not allowed:
            logger.warning(
                "decision_unauthorized",
                extra={"role_id": required, "claimed_role": claimed},
            )
            raise UnauthorizedError(str(actor_id), required, f"{operation} task")
        return claimed

    def _append_history(
        self,
        document: DocumentModel,
        version: DocumentVersionModel,
        task: TaskModel,
        action: HistoryAction,
        actor_id: UUID,
        actor_role: str,
        notes: str,
    ) -> ApprovalHistoryEntryModel:
        entry = ApprovalHistoryEntryModel(
            version_id=version.id,
            document_id=document.id,
            company_id=document.company_id,
            task_id=task.id,
            sequence=self._next_history_sequence(version.id),
            action=action.value,
            actor_id=actor_id,
            actor_role=actor_role,
            step_number=task.workflow_step_number,
            notes=notes,
        )
        self._session.add(entry)
        self._session.flush()
        self._session.expire(version, ["history"])
        return entry

    def _next_history_sequence(self, version_id: UUID) -> int:
        # Caller holds the document row lock; no other decider can be here.
        current = self._session.execute(
            select(func.max(ApprovalHistoryEntryModel.sequence))
            .where(ApprovalHistoryEntryModel.version_id == version_id)
        ).scalar_one()
        return (current or 0) + 1
