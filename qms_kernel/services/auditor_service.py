"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every workflow-store
    and engine mutation.  Provides chain validation for tamper detection
    and trace queries for review.

Architecture position:
    Kernel > Services -- imperative shell, called by
    WorkflowDefinitionService, DocumentService, TaskService and
    WorkflowEngine.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Audit chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.  Every event links to its predecessor.
    - Append-only: audit events are never modified or deleted (ORM
      listeners on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.

Audit relevance:
    This IS the audit service.  All audit events flow through
    ``_create_audit_event()``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from qms_kernel.domain.clock import Clock, SystemClock
from qms_kernel.exceptions import AuditChainBrokenError
from qms_kernel.logging_config import get_logger
from qms_kernel.models.audit_event import AuditAction, AuditEvent
from qms_kernel.services.sequence_service import SequenceService
from qms_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        The sequence is allocated first: the locked counter row serializes
        writers, so the predecessor hash read afterwards is the committed
        chain head.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = payload or {}
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Workflow definition store

    def record_workflow_created(
        self,
        workflow_id: UUID,
        name: str,
        module: str,
        roles: list[str],
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WorkflowDefinition",
            entity_id=workflow_id,
            action=AuditAction.WORKFLOW_CREATED,
            actor_id=actor_id,
            payload={"name": name, "module": module, "roles": list(roles)},
        )

    def record_workflow_steps_replaced(
        self,
        workflow_id: UUID,
        roles: list[str],
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WorkflowDefinition",
            entity_id=workflow_id,
            action=AuditAction.WORKFLOW_STEPS_REPLACED,
            actor_id=actor_id,
            payload={"roles": list(roles)},
        )

    def record_workflow_deleted(
        self,
        workflow_id: UUID,
        name: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WorkflowDefinition",
            entity_id=workflow_id,
            action=AuditAction.WORKFLOW_DELETED,
            actor_id=actor_id,
            payload={"name": name},
        )

    # Document lifecycle

    def record_document_created(
        self,
        document_id: UUID,
        code: str,
        version_number: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.DOCUMENT_CREATED,
            actor_id=actor_id,
            payload={"code": code, "version_number": version_number},
        )

    def record_document_submitted(
        self,
        document_id: UUID,
        version_id: UUID,
        workflow_id: UUID,
        actor_id: UUID,
    ) -> AuditEvent:
        """
        Record that a version entered the approval sequence at step 1.

        Preconditions:
            - The version is PENDING_APPROVAL in the same transaction.
        """
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.DOCUMENT_SUBMITTED,
            actor_id=actor_id,
            payload={
                "version_id": str(version_id),
                "workflow_id": str(workflow_id),
            },
        )

    def record_step_approved(
        self,
        document_id: UUID,
        version_id: UUID,
        step_number: int,
        actor_role: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.STEP_APPROVED,
            actor_id=actor_id,
            payload={
                "version_id": str(version_id),
                "step_number": step_number,
                "actor_role": actor_role,
            },
        )

    def record_document_published(
        self,
        document_id: UUID,
        version_id: UUID,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.DOCUMENT_PUBLISHED,
            actor_id=actor_id,
            payload={"version_id": str(version_id)},
        )

    def record_document_rejected(
        self,
        document_id: UUID,
        version_id: UUID,
        step_number: int,
        reason: str,
        actor_id: UUID,
    ) -> AuditEvent:
        """
        Record that a version was sent back to its author.

        Preconditions:
            - ``reason`` is non-empty.
        """
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.DOCUMENT_REJECTED,
            actor_id=actor_id,
            payload={
                "version_id": str(version_id),
                "step_number": step_number,
                "reason": reason,
            },
        )

    def record_document_resubmitted(
        self,
        document_id: UUID,
        version_id: UUID,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.DOCUMENT_RESUBMITTED,
            actor_id=actor_id,
            payload={"version_id": str(version_id)},
        )

    def record_document_canceled(
        self,
        document_id: UUID,
        previous_status: str,
        reason: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Document",
            entity_id=document_id,
            action=AuditAction.DOCUMENT_CANCELED,
            actor_id=actor_id,
            payload={"previous_status": previous_status, "reason": reason},
        )

    # Task ledger

    def record_task_opened(
        self,
        task_id: UUID,
        document_id: UUID,
        step_number: int,
        assignee: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Task",
            entity_id=task_id,
            action=AuditAction.TASK_OPENED,
            actor_id=actor_id,
            payload={
                "document_id": str(document_id),
                "step_number": step_number,
                "assignee": assignee,
            },
        )

    def record_task_closed(
        self,
        task_id: UUID,
        outcome: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Task",
            entity_id=task_id,
            action=AuditAction.TASK_CLOSED,
            actor_id=actor_id,
            payload={"outcome": outcome},
        )

    # Validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every event's payload still hashes
              to its stored ``payload_hash``, every stored ``hash`` matches
              the recomputed value, and every ``prev_hash`` matches its
              predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(
                str(events[0].id), "None", events[0].prev_hash,
            )

        for i, event in enumerate(events):
            actual_payload_hash = hash_payload(event.payload or {})
            if actual_payload_hash != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), event.payload_hash, actual_payload_hash,
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        str(event.id), expected_prev, event.prev_hash or "None",
                    )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Complete audit trace for an entity, in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
