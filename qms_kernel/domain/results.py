"""Result type returned by every WorkflowEngine operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from qms_kernel.domain.document import ApprovalHistoryEntry, DocumentStatus
from qms_kernel.domain.task import Task


class EngineOperation(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RESUBMIT = "resubmit"
    CANCEL = "cancel"


@dataclass(frozen=True)
class EngineResult:
    """Outcome of one engine operation.

    ``closed_task`` is the task the decision was recorded against (None
    for submit); ``opened_task`` is the task now awaiting action (None
    once the document is published or canceled).
    """

    operation: EngineOperation
    document_id: UUID
    version_id: UUID
    document_status: DocumentStatus
    closed_task: Task | None = None
    opened_task: Task | None = None
    history_entry: ApprovalHistoryEntry | None = None

    @property
    def is_published(self) -> bool:
        return self.document_status == DocumentStatus.PUBLISHED

    @property
    def current_step(self) -> int | None:
        if self.opened_task is None:
            return None
        return self.opened_task.workflow_step_number
