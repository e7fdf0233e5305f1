"""Services for the QMS kernel (write side)."""

from qms_kernel.services.auditor_service import AuditorService, AuditTrace
from qms_kernel.services.document_service import DocumentService
from qms_kernel.services.sequence_service import SequenceService
from qms_kernel.services.task_service import TaskService
from qms_kernel.services.workflow_definition_service import WorkflowDefinitionService
from qms_kernel.services.workflow_engine import WorkflowEngine

__all__ = [
    "AuditorService",
    "AuditTrace",
    "DocumentService",
    "SequenceService",
    "TaskService",
    "WorkflowDefinitionService",
    "WorkflowEngine",
]
