"""
Typed Exception Hierarchy for the QMS Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure of the approval engine is surfaced to a human actor as an
actionable message ("already decided", "reason required", ...).  Callers
must be able to tell these apart without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.approve(task_id, actor_id, actor_role)
    except TaskAlreadyClosedError as e:
        show(f"Task {e.task_id} was already decided")
    except UnauthorizedError as e:
        show(f"{e.actor_id} may not act as {e.role_id}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    QmsKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidWorkflowError
    |   +-- WorkflowNotFoundError
    |   +-- WorkflowInUseError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- VersionNotFoundError
    |   +-- MissingArtifactError
    |   +-- DuplicateDocumentCodeError
    |   +-- PreconditionFailedError
    |
    +-- TaskError
    |   +-- TaskNotFoundError
    |   +-- TaskAlreadyClosedError
    |
    +-- ValidationError
    |   +-- MissingRejectionReasonError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_WORKFLOW            | Definition missing, empty or malformed
                | WORKFLOW_NOT_FOUND          | Definition vanished mid-flight
                | WORKFLOW_IN_USE             | Editing a definition with in-flight docs
----------------|-----------------------------|-----------------------------------------
Document        | DOCUMENT_NOT_FOUND          | Document ID doesn't exist in company
                | VERSION_NOT_FOUND           | Version ID doesn't belong to document
                | MISSING_ARTIFACT            | Submitting a version with no file
                | DUPLICATE_DOCUMENT_CODE     | Code already used in the company
                | PRECONDITION_FAILED         | Wrong document status for operation
----------------|-----------------------------|-----------------------------------------
Task            | TASK_NOT_FOUND              | Task ID doesn't exist
                | TASK_ALREADY_CLOSED         | Task already decided (double action)
----------------|-----------------------------|-----------------------------------------
Validation      | MISSING_REJECTION_REASON    | Reject called with empty notes
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED                | Gate denied the actor
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying history / audit records
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. UnauthorizedError and TaskAlreadyClosedError live in different
   categories so a caller can never confuse "you may not" with
   "someone already did".

2. Nothing here is fatal to the process.  Every class is recoverable at
   the caller; the engine guarantees no partial writes survive a raise.
"""


class QmsKernelError(Exception):
    """
    Base exception for all QMS kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "QMS_KERNEL_ERROR"


# Workflow definition exceptions


class WorkflowError(QmsKernelError):
    """Base exception for workflow-definition errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidWorkflowError(WorkflowError):
    """Workflow definition is missing, empty, or structurally invalid."""

    code: str = "INVALID_WORKFLOW"

    def __init__(self, workflow_id: str | None, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Invalid workflow {workflow_id}: {reason}")


class WorkflowNotFoundError(WorkflowError):
    """Workflow definition does not exist (or vanished mid-flight)."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class WorkflowInUseError(WorkflowError):
    """Workflow definition is referenced by an in-flight document."""

    code: str = "WORKFLOW_IN_USE"

    def __init__(self, workflow_id: str, in_flight_count: int):
        self.workflow_id = workflow_id
        self.in_flight_count = in_flight_count
        super().__init__(
            f"Workflow {workflow_id} is referenced by {in_flight_count} "
            "in-flight document(s) and cannot be changed"
        )


# Document exceptions


class DocumentError(QmsKernelError):
    """Base exception for document/version errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class VersionNotFoundError(DocumentError):
    """Version not found, or not a version of the given document."""

    code: str = "VERSION_NOT_FOUND"

    def __init__(self, version_id: str, document_id: str | None = None):
        self.version_id = version_id
        self.document_id = document_id
        super().__init__(
            f"Version {version_id} not found"
            + (f" for document {document_id}" if document_id else "")
        )


class MissingArtifactError(DocumentError):
    """Version has no file reference attached and cannot be submitted."""

    code: str = "MISSING_ARTIFACT"

    def __init__(self, document_id: str, version_id: str):
        self.document_id = document_id
        self.version_id = version_id
        super().__init__(
            f"Version {version_id} of document {document_id} has no file attached"
        )


class DuplicateDocumentCodeError(DocumentError):
    """Document code is already used within the company."""

    code: str = "DUPLICATE_DOCUMENT_CODE"

    def __init__(self, company_id: str, doc_code: str):
        self.company_id = company_id
        self.doc_code = doc_code
        super().__init__(f"Document code {doc_code!r} already exists in company {company_id}")


class PreconditionFailedError(DocumentError):
    """Document is not in a status that allows the requested operation."""

    code: str = "PRECONDITION_FAILED"

    def __init__(
        self,
        document_id: str,
        operation: str,
        current_status: str,
        expected_statuses: tuple[str, ...],
    ):
        self.document_id = document_id
        self.operation = operation
        self.current_status = current_status
        self.expected_statuses = expected_statuses
        super().__init__(
            f"Cannot {operation} document {document_id}: status is "
            f"{current_status!r}, expected one of {', '.join(expected_statuses)}"
        )


# Task exceptions


class TaskError(QmsKernelError):
    """Base exception for task-ledger errors."""

    code: str = "TASK_ERROR"


class TaskNotFoundError(TaskError):
    """Task with given ID was not found."""

    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskAlreadyClosedError(TaskError):
    """
    Task was already acted upon.

    Raised on double-approval and when a concurrent caller lost the
    conditional close.  Never raised for authorization failures.
    """

    code: str = "TASK_ALREADY_CLOSED"

    def __init__(self, task_id: str, outcome: str | None = None):
        self.task_id = task_id
        self.outcome = outcome
        super().__init__(
            f"Task {task_id} is already closed"
            + (f" (outcome={outcome})" if outcome else "")
        )


# Validation exceptions


class ValidationError(QmsKernelError):
    """Base exception for invalid caller input."""

    code: str = "VALIDATION_ERROR"


class MissingRejectionReasonError(ValidationError):
    """Rejection requested without a stated reason."""

    code: str = "MISSING_REJECTION_REASON"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"A rejection reason is required for task {task_id}")


# Authorization exceptions


class AuthorizationError(QmsKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """The authorization gate denied the actor for this operation."""

    code: str = "UNAUTHORIZED"

    def __init__(self, actor_id: str, role_id: str | None, operation: str):
        self.actor_id = actor_id
        self.role_id = role_id
        self.operation = operation
        super().__init__(
            f"Actor {actor_id} is not authorized to {operation}"
            + (f" (requires role {role_id})" if role_id else "")
        )


# Immutability exceptions


class ImmutabilityError(QmsKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Approval history entries and audit events are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(QmsKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
