"""
DocumentService -- draft authoring for controlled documents.

Responsibility:
    Creates documents with their first version, attaches files and edits
    descriptive metadata while a document is editable (DRAFT or REVISION).

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - DL-1: this service never writes ``status``.  Only WorkflowEngine
      moves a document through its lifecycle.
    - Document codes are unique per company.
    - Content edits are only accepted while the document is editable.

Failure modes:
    - DuplicateDocumentCodeError: code already used in the company.
    - DocumentNotFoundError / VersionNotFoundError: unknown ids.
    - PreconditionFailedError: document is not DRAFT or REVISION.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from qms_kernel.domain.clock import Clock, SystemClock
from qms_kernel.domain.document import (
    EDITABLE_DOCUMENT_STATUSES,
    DocumentRecord,
    DocumentStatus,
    DocumentType,
    VersionRecord,
)
from qms_kernel.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentCodeError,
    PreconditionFailedError,
    VersionNotFoundError,
)
from qms_kernel.logging_config import get_logger
from qms_kernel.models.document import DocumentModel, DocumentVersionModel
from qms_kernel.services.auditor_service import AuditorService

logger = get_logger("services.document")

INITIAL_VERSION_NUMBER = "1.0"


class DocumentService:
    """
    Authoring operations on draft documents.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT change lifecycle status (see WorkflowEngine).
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    def create_document(
        self,
        company_id: UUID,
        code: str,
        title: str,
        doc_type: DocumentType | str,
        author_id: UUID,
        version_number: str = INITIAL_VERSION_NUMBER,
        revision_notes: str = "",
        file_reference: str | None = None,
        owner_department: str | None = None,
        description: str | None = None,
    ) -> DocumentRecord:
        """
        Create a DRAFT document and its first version.

        Raises:
            DuplicateDocumentCodeError: If ``code`` is taken in the company.
            ValueError: If ``doc_type`` is not a known document type.
        """
        code = code.strip()
        doc_type = DocumentType(doc_type)

        existing = self._session.execute(
            select(DocumentModel.id).where(
                DocumentModel.company_id == company_id,
                DocumentModel.code == code,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateDocumentCodeError(str(company_id), code)

        document = DocumentModel(
            company_id=company_id,
            code=code,
            title=title,
            doc_type=doc_type.value,
            owner_department=owner_department,
            description=description,
            status=DocumentStatus.DRAFT.value,
            created_by_id=author_id,
        )
        self._session.add(document)
        self._session.flush()

        version = DocumentVersionModel(
            document_id=document.id,
            company_id=company_id,
            version_number=version_number,
            file_reference=file_reference,
            revision_notes=revision_notes,
            status=DocumentStatus.DRAFT.value,
            created_by_id=author_id,
        )
        self._session.add(version)
        self._session.flush()
        document.current_version_id = version.id
        self._session.flush()

        self._auditor.record_document_created(
            document_id=document.id,
            code=code,
            version_number=version_number,
            actor_id=author_id,
        )
        logger.info(
            "document_created",
            extra={
                "document_id": str(document.id),
                "version_id": str(version.id),
                "doc_code": code,
            },
        )
        return document.to_dto()

    def attach_file(
        self,
        version_id: UUID,
        file_reference: str,
        actor_id: UUID,
        revision_notes: str | None = None,
    ) -> VersionRecord:
        """
        Set the file reference of an editable version.

        Raises:
            VersionNotFoundError: Unknown version.
            PreconditionFailedError: Document is not DRAFT or REVISION.
        """
        version = self._session.get(DocumentVersionModel, version_id)
        if version is None:
            raise VersionNotFoundError(str(version_id))
        document = self._load_document(version.document_id, for_update=True)
        self._ensure_editable(document, "attach a file to")

        version.file_reference = file_reference
        if revision_notes is not None:
            version.revision_notes = revision_notes
        version.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "document_file_attached",
            extra={"document_id": str(document.id), "version_id": str(version_id)},
        )
        return version.to_dto()

    def update_metadata(
        self,
        document_id: UUID,
        actor_id: UUID,
        title: str | None = None,
        owner_department: str | None = None,
        description: str | None = None,
    ) -> DocumentRecord:
        """
        Edit descriptive fields of an editable document.

        Raises:
            DocumentNotFoundError: Unknown document.
            PreconditionFailedError: Document is not DRAFT or REVISION.
        """
        document = self._load_document(document_id, for_update=True)
        self._ensure_editable(document, "edit")

        if title is not None:
            document.title = title
        if owner_department is not None:
            document.owner_department = owner_department
        if description is not None:
            document.description = description
        document.updated_by_id = actor_id
        self._session.flush()

        return document.to_dto()

    def _load_document(self, document_id: UUID, for_update: bool = False) -> DocumentModel:
        query = select(DocumentModel).where(DocumentModel.id == document_id)
        if for_update:
            query = query.with_for_update()
        document = self._session.execute(query).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    @staticmethod
    def _ensure_editable(document: DocumentModel, operation: str) -> None:
        if DocumentStatus(document.status) not in EDITABLE_DOCUMENT_STATUSES:
            raise PreconditionFailedError(
                document_id=str(document.id),
                operation=operation,
                current_status=document.status,
                expected_statuses=tuple(
                    s.value for s in (DocumentStatus.DRAFT, DocumentStatus.REVISION)
                ),
            )
