"""
Module: qms_kernel.models.approval_history
Responsibility: ORM persistence for the append-only approval history of
    document versions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener in db/immutability.py).
    - ``sequence`` numbers the entries of one version from 1, unique per
      version, and is allocated while the document row is locked, so entry
      order is decision order.
    - ``recorded_at`` is assigned by the database (server default NOW()),
      never by the calling client.
    - A rejected entry carries a non-empty reason (check constraint).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a rejected entry without notes, or on a second
      entry with the same sequence for one version.

Audit relevance:
    This table IS the regulatory decision record for each version.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from qms_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from qms_kernel.domain.document import ApprovalHistoryEntry


class ApprovalHistoryEntryModel(Base):
    """One approve / reject decision against a document version."""

    __tablename__ = "approval_history"

    __table_args__ = (
        CheckConstraint(
            "action IN ('approved', 'rejected')",
            name="ck_approval_history_valid_action",
        ),
        CheckConstraint(
            "action <> 'rejected' OR length(trim(notes)) > 0",
            name="ck_approval_history_rejection_reason",
        ),
        CheckConstraint("step_number >= 1", name="ck_approval_history_step_positive"),
        UniqueConstraint(
            "version_id", "sequence", name="uq_approval_history_version_seq",
        ),
    )

    # recorded_at comes back from the INSERT
    __mapper_args__ = {"eager_defaults": True}

    version_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("document_versions.id"), nullable=False,
    )
    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    task_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("tasks.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(100), nullable=False)
    step_number: Mapped[int] = mapped_column(nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ApprovalHistoryEntry #{self.sequence} {self.action} step={self.step_number}>"

    def to_dto(self) -> ApprovalHistoryEntry:
        from qms_kernel.domain.document import ApprovalHistoryEntry, HistoryAction

        return ApprovalHistoryEntry(
            id=self.id,
            version_id=self.version_id,
            sequence=self.sequence,
            action=HistoryAction(self.action),
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            step_number=self.step_number,
            notes=self.notes or "",
            recorded_at=self.recorded_at,
        )
