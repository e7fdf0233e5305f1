"""
Module: qms_kernel.models.workflow_definition
Responsibility: ORM persistence for workflow definitions and their ordered
    approval steps.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - One row per (workflow_id, step_number); step_number >= 1.
    - Definition names are unique per (company, module).
    - Steps are loaded in step_number order, so ``to_dto()`` produces the
      tuple the engine indexes by explicit number.

Failure modes:
    - IntegrityError on duplicate step number or duplicate name.
    - InvalidWorkflowError from ``to_dto()`` if stored rows are not
      contiguous (rows written outside WorkflowDefinitionService).

Audit relevance:
    Definition changes are recorded by AuditorService
    (workflow_created / workflow_steps_replaced / workflow_deleted).
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qms_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from qms_kernel.domain.workflow import WorkflowDefinition


class WorkflowDefinitionModel(TrackedBase):
    """A named approval workflow owned by one company."""

    __tablename__ = "workflow_definitions"

    __table_args__ = (
        UniqueConstraint(
            "company_id", "module", "name",
            name="uq_workflow_definitions_company_module_name",
        ),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    module: Mapped[str] = mapped_column(String(50), nullable=False)

    steps: Mapped[list["WorkflowStepModel"]] = relationship(
        "WorkflowStepModel",
        back_populates="workflow",
        order_by="WorkflowStepModel.step_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<WorkflowDefinition {self.name} ({len(self.steps)} steps)>"

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to a validated frozen domain DTO."""
        from qms_kernel.domain.workflow import WorkflowDefinition

        definition = WorkflowDefinition(
            id=self.id,
            company_id=self.company_id,
            name=self.name,
            module=self.module,
            steps=tuple(s.to_dto() for s in self.steps),
            created_at=self.created_at,
        )
        definition.validate()
        return definition


class WorkflowStepModel(Base):
    """One numbered step of a workflow definition."""

    __tablename__ = "workflow_steps"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "step_number",
            name="uq_workflow_steps_workflow_number",
        ),
        CheckConstraint("step_number >= 1", name="ck_workflow_steps_number_positive"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_number: Mapped[int] = mapped_column(nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    required_role: Mapped[str] = mapped_column(String(100), nullable=False)

    workflow: Mapped[WorkflowDefinitionModel] = relationship(
        WorkflowDefinitionModel, back_populates="steps",
    )

    def to_dto(self):
        from qms_kernel.domain.workflow import WorkflowStep

        return WorkflowStep(
            step_number=self.step_number,
            step_name=self.step_name,
            required_role=self.required_role,
        )
