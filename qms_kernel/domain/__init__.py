"""Pure domain layer - value objects and protocols, no I/O."""

from qms_kernel.domain.authorization import AuthorizationGate, StaticRoleGate
from qms_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from qms_kernel.domain.document import (
    DOCUMENT_TRANSITIONS,
    ApprovalHistoryEntry,
    DocumentRecord,
    DocumentStatus,
    DocumentType,
    HistoryAction,
    VersionRecord,
    can_transition,
)
from qms_kernel.domain.results import EngineOperation, EngineResult
from qms_kernel.domain.task import (
    REVISION_STEP_NUMBER,
    Task,
    TaskOutcome,
    TaskStatus,
    TaskType,
)
from qms_kernel.domain.workflow import (
    DOCUMENTS_MODULE,
    WorkflowDefinition,
    WorkflowStep,
    normalize_steps,
)

__all__ = [
    "AuthorizationGate",
    "StaticRoleGate",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "DOCUMENT_TRANSITIONS",
    "ApprovalHistoryEntry",
    "DocumentRecord",
    "DocumentStatus",
    "DocumentType",
    "HistoryAction",
    "VersionRecord",
    "can_transition",
    "EngineOperation",
    "EngineResult",
    "REVISION_STEP_NUMBER",
    "Task",
    "TaskOutcome",
    "TaskStatus",
    "TaskType",
    "DOCUMENTS_MODULE",
    "WorkflowDefinition",
    "WorkflowStep",
    "normalize_steps",
]
