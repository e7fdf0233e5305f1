"""
Task ledger types (``qms_kernel.domain.task``).

Responsibility
--------------
Pure value objects for work-items: the unit of pending work that says
"this step is currently awaiting action".

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* TL-1: A task is assigned to exactly one of a role (approval step) or
  a user (revision request).
* TL-2: Revision tasks carry ``workflow_step_number == 0``; they sit
  outside the step sequence.
* TL-3: ``OPEN -> CLOSED`` is the only transition; a closed task is never
  reopened.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

REVISION_STEP_NUMBER = 0


class TaskStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class TaskType(str, Enum):
    DOCUMENT_APPROVAL = "document_approval"
    REVISION_REQUEST = "revision_request"


class TaskOutcome(str, Enum):
    """Why a task was closed."""

    APPROVED = "approved"
    REJECTED = "rejected"
    RESUBMITTED = "resubmitted"
    CANCELED = "canceled"


def approval_task_title(doc_code: str, step_number: int) -> str:
    return f"Approval pending: {doc_code} (step {step_number})"


def revision_task_title(doc_code: str) -> str:
    return f"Revision required: {doc_code}"


@dataclass(frozen=True)
class Task:
    """Frozen snapshot of a task-ledger row."""

    id: UUID
    company_id: UUID
    document_id: UUID
    version_id: UUID
    task_type: TaskType
    title: str
    workflow_step_number: int
    status: TaskStatus
    assigned_role_id: str | None = None
    assigned_user_id: UUID | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    outcome: TaskOutcome | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TaskStatus.OPEN

    @property
    def is_revision(self) -> bool:
        return self.task_type == TaskType.REVISION_REQUEST
