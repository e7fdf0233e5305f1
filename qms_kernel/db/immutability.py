"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Approval history is the regulatory record of who decided what.  It may
only grow.  This module intercepts ORM flushes that would modify or
delete protected rows and aborts them before any SQL is sent.

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable                  | Why
-----------------------|---------------------------------|-------------------------------
ApprovalHistoryEntry   | ALWAYS (from creation)          | Append-only decision record
AuditEvent             | ALWAYS (from creation)          | Audit trail is sacred
Task                   | After status = CLOSED           | A decided step stays decided
DocumentVersion        | Content, after PUBLISHED        | Published text is controlled

The task close itself is a conditional UPDATE statement issued by
TaskService and does not pass through these mapper events.

===============================================================================
USAGE
===============================================================================

    from qms_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from qms_kernel.exceptions import ImmutabilityViolationError
from qms_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields of a version that are frozen once it is published
_PUBLISHED_VERSION_FIELDS = ("file_reference", "revision_notes", "version_number")


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_history_entry_immutability(mapper, connection, target):
    _block(
        "ApprovalHistoryEntry", target.id, "UPDATE",
        "Approval history entries are append-only and cannot be modified",
    )


def _check_history_entry_delete(mapper, connection, target):
    _block(
        "ApprovalHistoryEntry", target.id, "DELETE",
        "Approval history entries are append-only and cannot be deleted",
    )


def _check_audit_event_immutability(mapper, connection, target):
    _block(
        "AuditEvent", target.id, "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    _block(
        "AuditEvent", target.id, "DELETE",
        "Audit events are immutable and cannot be deleted",
    )


def _check_task_immutability(mapper, connection, target):
    """Block changes to a task that was already closed before this flush."""
    from qms_kernel.domain.task import TaskStatus

    status_history = get_history(target, "status")
    previous = status_history.deleted or status_history.unchanged
    if previous and previous[0] == TaskStatus.CLOSED:
        _block(
            "Task", target.id, "UPDATE",
            "Closed tasks cannot be modified or reopened",
        )


def _check_task_delete(mapper, connection, target):
    _block("Task", target.id, "DELETE", "Tasks are retained for the audit trail")


def _check_version_immutability(mapper, connection, target):
    """Block content edits to a version that was already published."""
    from qms_kernel.domain.document import DocumentStatus

    status_history = get_history(target, "status")
    previous = status_history.deleted or status_history.unchanged
    if not previous or previous[0] != DocumentStatus.PUBLISHED:
        return

    for field_name in _PUBLISHED_VERSION_FIELDS:
        if get_history(target, field_name).has_changes():
            _block(
                "DocumentVersion", target.id, "UPDATE",
                f"Published version field '{field_name}' cannot be modified",
            )
    if status_history.has_changes():
        _block(
            "DocumentVersion", target.id, "UPDATE",
            "Published versions cannot change status",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.
    """
    from qms_kernel.models.approval_history import ApprovalHistoryEntryModel
    from qms_kernel.models.audit_event import AuditEvent
    from qms_kernel.models.document import DocumentVersionModel
    from qms_kernel.models.task import TaskModel

    listeners = _listeners(
        ApprovalHistoryEntryModel, AuditEvent, TaskModel, DocumentVersionModel,
    )
    for target, event_name, fn in listeners:
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from qms_kernel.models.approval_history import ApprovalHistoryEntryModel
    from qms_kernel.models.audit_event import AuditEvent
    from qms_kernel.models.document import DocumentVersionModel
    from qms_kernel.models.task import TaskModel

    listeners = _listeners(
        ApprovalHistoryEntryModel, AuditEvent, TaskModel, DocumentVersionModel,
    )
    for target, event_name, fn in listeners:
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)


def _listeners(history_model, audit_model, task_model, version_model):
    return [
        (history_model, "before_update", _check_history_entry_immutability),
        (history_model, "before_delete", _check_history_entry_delete),
        (audit_model, "before_update", _check_audit_event_immutability),
        (audit_model, "before_delete", _check_audit_event_delete),
        (task_model, "before_update", _check_task_immutability),
        (task_model, "before_delete", _check_task_delete),
        (version_model, "before_update", _check_version_immutability),
    ]
