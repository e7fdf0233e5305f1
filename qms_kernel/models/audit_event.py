"""
Module: qms_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listener).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the audit trail.  Every workflow-store and engine
    mutation produces at least one AuditEvent.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from qms_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: Adding a new action type requires a recording method on
    AuditorService.
    """

    # Workflow definition store
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_STEPS_REPLACED = "workflow_steps_replaced"
    WORKFLOW_DELETED = "workflow_deleted"

    # Document lifecycle
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_SUBMITTED = "document_submitted"
    STEP_APPROVED = "step_approved"
    DOCUMENT_PUBLISHED = "document_published"
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_RESUBMITTED = "document_resubmitted"
    DOCUMENT_CANCELED = "document_canceled"

    # Task ledger
    TASK_OPENED = "task_opened"
    TASK_CLOSED = "task_closed"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "Document", "Task", "WorkflowDefinition"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
