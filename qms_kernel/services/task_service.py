"""
TaskService -- the task ledger.

Responsibility:
    Opens and closes work-items.  A task says "this step of this document
    version is awaiting action by this role (or this user)".

Architecture position:
    Kernel > Services -- imperative shell.  Called only by WorkflowEngine;
    read access for inboxes goes through selectors/task_selector.py.

Invariants enforced:
    - At most one OPEN task per (document_id, version_id).  Enforced by the
      partial unique index on the tasks table and by opening a new task
      only after the previous one was closed in the same transaction.
    - Single writer per step: ``close_task()`` is a conditional UPDATE
      (``... WHERE id = :id AND status = 'open'``).  Of two transactions
      racing on one task, exactly one sees rowcount 1; the other raises
      TaskAlreadyClosedError.
    - TL-3: a closed task is never reopened; a new task is created instead.

Failure modes:
    - TaskNotFoundError: unknown task id.
    - TaskAlreadyClosedError: the conditional close matched no open row.
    - IntegrityError: a second open task for the same version (a bug in
      the caller; the index refuses it).
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from qms_kernel.domain.clock import Clock, SystemClock
from qms_kernel.domain.task import (
    REVISION_STEP_NUMBER,
    Task,
    TaskOutcome,
    TaskStatus,
    TaskType,
    approval_task_title,
    revision_task_title,
)
from qms_kernel.domain.workflow import WorkflowStep
from qms_kernel.exceptions import TaskAlreadyClosedError, TaskNotFoundError
from qms_kernel.logging_config import get_logger
from qms_kernel.models.document import DocumentModel, DocumentVersionModel
from qms_kernel.models.task import TaskModel
from qms_kernel.services.auditor_service import AuditorService

logger = get_logger("services.task")


class TaskService:
    """
    Write side of the task ledger.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT check authorization; WorkflowEngine consults the gate
          before calling in.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    def open_approval_task(
        self,
        document: DocumentModel,
        version: DocumentVersionModel,
        step: WorkflowStep,
        actor_id: UUID,
    ) -> TaskModel:
        """Open the task for ``step``, assigned to its required role."""
        task = TaskModel(
            company_id=document.company_id,
            document_id=document.id,
            version_id=version.id,
            task_type=TaskType.DOCUMENT_APPROVAL.value,
            title=approval_task_title(document.code, step.step_number),
            workflow_step_number=step.step_number,
            assigned_role_id=step.required_role,
            status=TaskStatus.OPEN.value,
            created_at=self._clock.now(),
        )
        return self._open(task, assignee=step.required_role, actor_id=actor_id)

    def open_revision_task(
        self,
        document: DocumentModel,
        version: DocumentVersionModel,
        actor_id: UUID,
    ) -> TaskModel:
        """Open the revision task, assigned to the version's original author."""
        task = TaskModel(
            company_id=document.company_id,
            document_id=document.id,
            version_id=version.id,
            task_type=TaskType.REVISION_REQUEST.value,
            title=revision_task_title(document.code),
            workflow_step_number=REVISION_STEP_NUMBER,
            assigned_user_id=version.created_by_id,
            status=TaskStatus.OPEN.value,
            created_at=self._clock.now(),
        )
        return self._open(task, assignee=str(version.created_by_id), actor_id=actor_id)

    def _open(self, task: TaskModel, assignee: str, actor_id: UUID) -> TaskModel:
        self._session.add(task)
        self._session.flush()

        self._auditor.record_task_opened(
            task_id=task.id,
            document_id=task.document_id,
            step_number=task.workflow_step_number,
            assignee=assignee,
            actor_id=actor_id,
        )
        logger.info(
            "task_opened",
            extra={
                "task_id": str(task.id),
                "task_type": task.task_type,
                "step_number": task.workflow_step_number,
                "assignee": assignee,
            },
        )
        return task

    def close_task(
        self,
        task_id: UUID,
        outcome: TaskOutcome,
        actor_id: UUID,
    ) -> TaskModel:
        """
        Close an open task with a conditional UPDATE.

        Postconditions:
            - The task row is CLOSED with ``outcome``, ``closed_at`` and
              ``closed_by_id`` set, and the returned model reflects it.

        Raises:
            TaskAlreadyClosedError: The task was not open when the UPDATE ran.
        """
        result = self._session.execute(
            update(TaskModel)
            .where(
                TaskModel.id == task_id,
                TaskModel.status == TaskStatus.OPEN.value,
            )
            .values(
                status=TaskStatus.CLOSED.value,
                outcome=outcome.value,
                closed_at=self._clock.now(),
                closed_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            current = self._session.get(TaskModel, task_id, populate_existing=True)
            if current is None:
                raise TaskNotFoundError(str(task_id))
            logger.warning(
                "task_close_conflict",
                extra={"task_id": str(task_id), "current_outcome": current.outcome},
            )
            raise TaskAlreadyClosedError(str(task_id), current.outcome)

        task = self._session.get(TaskModel, task_id, populate_existing=True)

        self._auditor.record_task_closed(
            task_id=task_id, outcome=outcome.value, actor_id=actor_id,
        )
        logger.info(
            "task_closed",
            extra={"task_id": str(task_id), "outcome": outcome.value},
        )
        return task

    def get_task(self, task_id: UUID, refresh: bool = False) -> TaskModel:
        """
        Load a task.

        Raises:
            TaskNotFoundError: Unknown task id.
        """
        task = self._session.get(TaskModel, task_id, populate_existing=refresh)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    def get_open_task(self, document_id: UUID, version_id: UUID) -> TaskModel | None:
        """The single open task of a document version, if any."""
        return self._session.execute(
            select(TaskModel)
            .where(
                TaskModel.document_id == document_id,
                TaskModel.version_id == version_id,
                TaskModel.status == TaskStatus.OPEN.value,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_tasks(self, document_id: UUID) -> list[Task]:
        """Every task ever opened for a document, oldest first."""
        models = self._session.execute(
            select(TaskModel)
            .where(TaskModel.document_id == document_id)
            .order_by(TaskModel.created_at)
        ).scalars().all()
        return [m.to_dto() for m in models]
