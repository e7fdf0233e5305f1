"""
Document lifecycle types (``qms_kernel.domain.document``).

Responsibility
--------------
Pure value objects for the artifact under approval: the document status
state machine, the approval-history entry, and frozen snapshots of
document and version records.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* DL-1: Lifecycle state machine -- ``DOCUMENT_TRANSITIONS`` defines the
  only valid status transitions.  ``PUBLISHED`` and ``CANCELED`` are
  terminal.
* DL-2: ``CANCELED`` is reachable from every non-terminal state.
* DL-3: A ``REJECTED`` history entry always carries a non-empty reason.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


# =========================================================================
# Document Status Lifecycle (DL-1, DL-2)
# =========================================================================


class DocumentStatus(str, Enum):
    """Lifecycle states shared by a document and its active version."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    PUBLISHED = "published"
    REVISION = "revision"
    CANCELED = "canceled"


DOCUMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.DRAFT: frozenset({
        DocumentStatus.PENDING_APPROVAL,
        DocumentStatus.CANCELED,
    }),
    DocumentStatus.PENDING_APPROVAL: frozenset({
        DocumentStatus.PUBLISHED,
        DocumentStatus.REVISION,
        DocumentStatus.CANCELED,
    }),
    DocumentStatus.REVISION: frozenset({
        DocumentStatus.PENDING_APPROVAL,
        DocumentStatus.CANCELED,
    }),
    DocumentStatus.PUBLISHED: frozenset(),
    DocumentStatus.CANCELED: frozenset(),
}

TERMINAL_DOCUMENT_STATUSES: frozenset[DocumentStatus] = frozenset({
    DocumentStatus.PUBLISHED,
    DocumentStatus.CANCELED,
})

IN_FLIGHT_DOCUMENT_STATUSES: frozenset[DocumentStatus] = frozenset({
    DocumentStatus.PENDING_APPROVAL,
    DocumentStatus.REVISION,
})

EDITABLE_DOCUMENT_STATUSES: frozenset[DocumentStatus] = frozenset({
    DocumentStatus.DRAFT,
    DocumentStatus.REVISION,
})


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    """True if DL-1 allows moving from ``current`` to ``target``."""
    return target in DOCUMENT_TRANSITIONS.get(current, frozenset())


class DocumentType(str, Enum):
    """Kinds of controlled document."""

    PROCEDURE = "procedure"
    INSTRUCTION = "instruction"
    FORM = "form"
    RECORD = "record"
    OTHER = "other"


# =========================================================================
# Approval History
# =========================================================================


class HistoryAction(str, Enum):
    """Decisions recorded against a version."""

    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """One decision in a version's append-only approval history.

    ``sequence`` orders the entries of one version from 1; ``recorded_at``
    is the database commit-time timestamp.
    """

    id: UUID
    version_id: UUID
    sequence: int
    action: HistoryAction
    actor_id: UUID
    actor_role: str
    step_number: int
    notes: str = ""
    recorded_at: datetime | None = None


# =========================================================================
# Document / Version Snapshots
# =========================================================================


@dataclass(frozen=True)
class VersionRecord:
    """Frozen snapshot of a document version and its history."""

    id: UUID
    document_id: UUID
    company_id: UUID
    version_number: str
    status: DocumentStatus
    author_id: UUID
    file_reference: str | None = None
    revision_notes: str = ""
    submitted_at: datetime | None = None
    published_at: datetime | None = None
    approval_history: tuple[ApprovalHistoryEntry, ...] = ()

    @property
    def has_artifact(self) -> bool:
        return bool(self.file_reference and self.file_reference.strip())


@dataclass(frozen=True)
class DocumentRecord:
    """Frozen snapshot of a controlled document."""

    id: UUID
    company_id: UUID
    code: str
    title: str
    doc_type: DocumentType
    status: DocumentStatus
    author_id: UUID
    workflow_id: UUID | None = None
    current_version_id: UUID | None = None
    owner_department: str | None = None
    description: str | None = None
    created_at: datetime | None = None
    versions: tuple[VersionRecord, ...] = field(default=())
