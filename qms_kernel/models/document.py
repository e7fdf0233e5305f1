"""
Module: qms_kernel.models.document
Responsibility: ORM persistence for controlled documents and their versions.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    DL-1 -- DB check constraints limit status values; the WorkflowEngine is
            the only writer of ``status``.
    - Document codes are unique per company.
    - Version numbers are unique per document.
    - A published version's content is frozen (ORM listener in
      db/immutability.py).

Failure modes:
    - IntegrityError on duplicate (company_id, code).
    - ImmutabilityViolationError on editing a published version.

Audit relevance:
    ``DocumentVersionModel.created_by_id`` is the version's original
    author; rejections route the revision task to this user.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qms_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from qms_kernel.domain.document import DocumentRecord, VersionRecord
    from qms_kernel.models.approval_history import ApprovalHistoryEntryModel

_STATUS_CHECK = (
    "status IN ('draft', 'pending_approval', 'published', 'revision', 'canceled')"
)


class DocumentModel(TrackedBase):
    """
    A controlled document.

    Contract:
        ``workflow_id`` is a logical reference into the Workflow Definition
        Store; it is set at submission.  ``current_version_id`` names the
        version under review or last published.
    """

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_documents_company_code"),
        CheckConstraint(_STATUS_CHECK, name="ck_documents_valid_status"),
        CheckConstraint(
            "doc_type IN ('procedure', 'instruction', 'form', 'record', 'other')",
            name="ck_documents_valid_type",
        ),
        Index("idx_documents_company_status", "company_id", "status"),
        Index("idx_documents_workflow_status", "workflow_id", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    doc_type: Mapped[str] = mapped_column(String(20), nullable=False, default="procedure")
    owner_department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    workflow_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    current_version_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    versions: Mapped[list["DocumentVersionModel"]] = relationship(
        "DocumentVersionModel",
        back_populates="document",
        order_by="DocumentVersionModel.created_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Document {self.code} status={self.status}>"

    def to_dto(self, include_versions: bool = False) -> DocumentRecord:
        """Convert ORM model to frozen domain DTO."""
        from qms_kernel.domain.document import (
            DocumentRecord,
            DocumentStatus,
            DocumentType,
        )

        return DocumentRecord(
            id=self.id,
            company_id=self.company_id,
            code=self.code,
            title=self.title,
            doc_type=DocumentType(self.doc_type),
            status=DocumentStatus(self.status),
            author_id=self.created_by_id,
            workflow_id=self.workflow_id,
            current_version_id=self.current_version_id,
            owner_department=self.owner_department,
            description=self.description,
            created_at=self.created_at,
            versions=(
                tuple(v.to_dto() for v in self.versions) if include_versions else ()
            ),
        )


class DocumentVersionModel(TrackedBase):
    """One version of a document and the anchor of its approval history."""

    __tablename__ = "document_versions"

    __table_args__ = (
        UniqueConstraint(
            "document_id", "version_number",
            name="uq_document_versions_document_number",
        ),
        CheckConstraint(_STATUS_CHECK, name="ck_document_versions_valid_status"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False, index=True,
    )
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    version_number: Mapped[str] = mapped_column(String(20), nullable=False)
    file_reference: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    revision_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    document: Mapped[DocumentModel] = relationship(
        DocumentModel, back_populates="versions",
    )
    history: Mapped[list["ApprovalHistoryEntryModel"]] = relationship(
        "ApprovalHistoryEntryModel",
        order_by="ApprovalHistoryEntryModel.sequence",
        lazy="selectin",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<DocumentVersion {self.version_number} status={self.status}>"

    def to_dto(self) -> VersionRecord:
        from qms_kernel.domain.document import DocumentStatus, VersionRecord

        return VersionRecord(
            id=self.id,
            document_id=self.document_id,
            company_id=self.company_id,
            version_number=self.version_number,
            status=DocumentStatus(self.status),
            author_id=self.created_by_id,
            file_reference=self.file_reference,
            revision_notes=self.revision_notes or "",
            submitted_at=self.submitted_at,
            published_at=self.published_at,
            approval_history=tuple(h.to_dto() for h in self.history),
        )
