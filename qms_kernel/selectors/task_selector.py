"""
Module: qms_kernel.selectors.task_selector
Responsibility: Read-only access to the task ledger -- the "my pending
    work" inbox and per-document task lists.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; returns frozen ``Task`` DTOs.
    - Inbox visibility: a user sees open tasks of the company assigned to
      one of their roles or to them personally.  Holders of an override
      role see every open task of the company.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
"""

from uuid import UUID

from sqlalchemy import false, func, or_, select
from sqlalchemy.orm import Session

from qms_kernel.domain.authorization import AuthorizationGate
from qms_kernel.domain.task import Task, TaskStatus
from qms_kernel.models.task import TaskModel
from qms_kernel.selectors.base import BaseSelector


class TaskSelector(BaseSelector[TaskModel]):
    """Queries over the task ledger."""

    def __init__(self, session: Session, gate: AuthorizationGate | None = None):
        super().__init__(session)
        self._gate = gate

    def get(self, task_id: UUID) -> Task | None:
        model = self.session.get(TaskModel, task_id)
        return model.to_dto() if model else None

    def open_task_for(self, document_id: UUID, version_id: UUID) -> Task | None:
        model = self.session.execute(
            select(TaskModel).where(
                TaskModel.document_id == document_id,
                TaskModel.version_id == version_id,
                TaskModel.status == TaskStatus.OPEN.value,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def for_document(self, document_id: UUID) -> list[Task]:
        """All tasks of a document, oldest first."""
        models = self.session.execute(
            select(TaskModel)
            .where(TaskModel.document_id == document_id)
            .order_by(TaskModel.created_at)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def inbox(
        self,
        company_id: UUID,
        user_id: UUID,
        roles: tuple[str, ...] | None = None,
    ) -> list[Task]:
        """
        Open tasks awaiting ``user_id``, newest first.

        ``roles`` defaults to what the gate reports for the user.
        """
        query = select(TaskModel).where(
            TaskModel.company_id == company_id,
            TaskModel.status == TaskStatus.OPEN.value,
        )

        if not self._sees_everything(user_id, company_id):
            if roles is None:
                roles = (
                    self._gate.get_actor_roles(user_id, company_id)
                    if self._gate is not None
                    else ()
                )
            query = query.where(
                or_(
                    TaskModel.assigned_role_id.in_(roles) if roles else false(),
                    TaskModel.assigned_user_id == user_id,
                )
            )

        models = self.session.execute(
            query.order_by(TaskModel.created_at.desc())
        ).scalars().all()
        return [m.to_dto() for m in models]

    def count_open(self, company_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(TaskModel)
            .where(
                TaskModel.company_id == company_id,
                TaskModel.status == TaskStatus.OPEN.value,
            )
        ).scalar_one()

    def _sees_everything(self, user_id: UUID, company_id: UUID) -> bool:
        return self._gate is not None and self._gate.is_override(user_id, company_id)
