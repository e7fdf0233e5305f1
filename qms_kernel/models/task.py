"""
Module: qms_kernel.models.task
Responsibility: ORM persistence for the task ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    TL-1 -- Exactly one of ``assigned_role_id`` / ``assigned_user_id`` is set.
    TL-3 -- A closed task is never modified again (ORM listener).
    - At most one OPEN task per (document_id, version_id): partial unique
      index ``uq_tasks_one_open_per_version``.  TaskService.close_task()
      additionally closes with a conditional UPDATE so that two deciders
      racing on one task cannot both succeed.

Failure modes:
    - IntegrityError when a second open task is inserted for a version.
    - IntegrityError on a task with both or neither assignment set.

Audit relevance:
    ``closed_by_id`` / ``closed_at`` / ``outcome`` record who ended each
    step and how.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from qms_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from qms_kernel.domain.task import Task


class TaskModel(Base):
    """A unit of pending work: one workflow step awaiting action."""

    __tablename__ = "tasks"

    __table_args__ = (
        CheckConstraint("status IN ('open', 'closed')", name="ck_tasks_valid_status"),
        CheckConstraint(
            "task_type IN ('document_approval', 'revision_request')",
            name="ck_tasks_valid_type",
        ),
        CheckConstraint(
            "outcome IS NULL OR outcome IN "
            "('approved', 'rejected', 'resubmitted', 'canceled')",
            name="ck_tasks_valid_outcome",
        ),
        # TL-1
        CheckConstraint(
            "(assigned_role_id IS NULL) <> (assigned_user_id IS NULL)",
            name="ck_tasks_single_assignment",
        ),
        CheckConstraint(
            "workflow_step_number >= 0", name="ck_tasks_step_non_negative",
        ),
        Index(
            "uq_tasks_one_open_per_version",
            "document_id", "version_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_tasks_inbox_role", "company_id", "status", "assigned_role_id"),
        Index("idx_tasks_inbox_user", "company_id", "status", "assigned_user_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False,
    )
    version_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("document_versions.id"), nullable=False,
    )
    task_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    workflow_step_number: Mapped[int] = mapped_column(nullable=False)
    assigned_role_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="open")
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Task {self.title!r} step={self.workflow_step_number} "
            f"status={self.status}>"
        )

    def to_dto(self) -> Task:
        """Convert ORM model to frozen domain DTO."""
        from qms_kernel.domain.task import Task, TaskOutcome, TaskStatus, TaskType

        return Task(
            id=self.id,
            company_id=self.company_id,
            document_id=self.document_id,
            version_id=self.version_id,
            task_type=TaskType(self.task_type),
            title=self.title,
            workflow_step_number=self.workflow_step_number,
            status=TaskStatus(self.status),
            assigned_role_id=self.assigned_role_id,
            assigned_user_id=self.assigned_user_id,
            created_at=self.created_at,
            closed_at=self.closed_at,
            closed_by_id=self.closed_by_id,
            outcome=TaskOutcome(self.outcome) if self.outcome else None,
        )
