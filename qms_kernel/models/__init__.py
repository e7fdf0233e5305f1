"""ORM models for the QMS kernel."""

from qms_kernel.models.approval_history import ApprovalHistoryEntryModel
from qms_kernel.models.audit_event import AuditAction, AuditEvent
from qms_kernel.models.document import DocumentModel, DocumentVersionModel
from qms_kernel.models.task import TaskModel
from qms_kernel.models.workflow_definition import (
    WorkflowDefinitionModel,
    WorkflowStepModel,
)

__all__ = [
    "ApprovalHistoryEntryModel",
    "AuditAction",
    "AuditEvent",
    "DocumentModel",
    "DocumentVersionModel",
    "TaskModel",
    "WorkflowDefinitionModel",
    "WorkflowStepModel",
]
