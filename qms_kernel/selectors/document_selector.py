"""
Module: qms_kernel.selectors.document_selector
Responsibility: Read-only access to documents, versions and the approval
    history of a version.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; returns frozen DocumentRecord / VersionRecord /
      ApprovalHistoryEntry DTOs.
    - History is returned in sequence order, which is decision order.
"""

from uuid import UUID

from sqlalchemy import select

from qms_kernel.domain.document import (
    ApprovalHistoryEntry,
    DocumentRecord,
    DocumentStatus,
    VersionRecord,
)
from qms_kernel.models.approval_history import ApprovalHistoryEntryModel
from qms_kernel.models.document import DocumentModel, DocumentVersionModel
from qms_kernel.selectors.base import BaseSelector


class DocumentSelector(BaseSelector[DocumentModel]):
    """Queries over documents and their versions."""

    def get(self, document_id: UUID, include_versions: bool = True) -> DocumentRecord | None:
        model = self.session.get(DocumentModel, document_id)
        if model is None:
            return None
        if include_versions:
            self.session.refresh(model, ["versions"])
            for version in model.versions:
                self.session.refresh(version, ["history"])
        return model.to_dto(include_versions=include_versions)

    def get_by_code(self, company_id: UUID, code: str) -> DocumentRecord | None:
        model = self.session.execute(
            select(DocumentModel).where(
                DocumentModel.company_id == company_id,
                DocumentModel.code == code,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def list_documents(
        self,
        company_id: UUID,
        status: DocumentStatus | None = None,
    ) -> list[DocumentRecord]:
        """Documents of a company ordered by code, optionally by status."""
        query = select(DocumentModel).where(DocumentModel.company_id == company_id)
        if status is not None:
            query = query.where(DocumentModel.status == status.value)
        models = self.session.execute(query.order_by(DocumentModel.code)).scalars().all()
        return [m.to_dto() for m in models]

    def get_version(self, version_id: UUID) -> VersionRecord | None:
        model = self.session.get(DocumentVersionModel, version_id)
        if model is None:
            return None
        self.session.refresh(model, ["history"])
        return model.to_dto()

    def history(self, version_id: UUID) -> tuple[ApprovalHistoryEntry, ...]:
        models = self.session.execute(
            select(ApprovalHistoryEntryModel)
            .where(ApprovalHistoryEntryModel.version_id == version_id)
            .order_by(ApprovalHistoryEntryModel.sequence)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)
