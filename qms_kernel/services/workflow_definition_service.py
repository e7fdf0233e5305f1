"""
WorkflowDefinitionService -- the Workflow Definition Store.

Responsibility:
    Creates, lists, edits and deletes named approval workflows.  The
    WorkflowEngine only ever reads through ``get_workflow()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Step numbering is contiguous from 1 with non-blank names and roles
      (validated in domain/workflow.py before anything is written).
    - A definition referenced by an in-flight document (PENDING_APPROVAL
      or REVISION) cannot be edited or deleted, so the engine's step
      lookups stay stable for the duration of a review cycle.

Failure modes:
    - InvalidWorkflowError: malformed step list.
    - WorkflowNotFoundError: unknown workflow id.
    - WorkflowInUseError: edit/delete while documents are in flight.
"""

from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from qms_kernel.domain.clock import Clock, SystemClock
from qms_kernel.domain.document import IN_FLIGHT_DOCUMENT_STATUSES
from qms_kernel.domain.workflow import (
    WorkflowDefinition,
    WorkflowStep,
    normalize_steps,
)
from qms_kernel.exceptions import InvalidWorkflowError, WorkflowInUseError, WorkflowNotFoundError
from qms_kernel.logging_config import get_logger
from qms_kernel.models.document import DocumentModel
from qms_kernel.models.workflow_definition import (
    WorkflowDefinitionModel,
    WorkflowStepModel,
)
from qms_kernel.services.auditor_service import AuditorService

logger = get_logger("services.workflow_definition")

StepSpec = WorkflowStep | Mapping | tuple[str, str]


class WorkflowDefinitionService:
    """
    Persistence and lookup for workflow definitions.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
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

    def create_workflow(
        self,
        company_id: UUID,
        name: str,
        module: str,
        steps: Iterable[StepSpec],
        actor_id: UUID,
    ) -> WorkflowDefinition:
        """
        Create a workflow definition.

        Args:
            steps: ``(step_name, required_role)`` pairs, mappings, or
                WorkflowStep instances, in step order.

        Raises:
            InvalidWorkflowError: If the name is blank or steps are invalid.
        """
        if not name or not name.strip():
            raise InvalidWorkflowError(None, "workflow name is required")
        normalized = normalize_steps(steps, workflow_id=name)

        model = WorkflowDefinitionModel(
            company_id=company_id,
            name=name.strip(),
            module=module,
            created_by_id=actor_id,
        )
        model.steps = [self._step_model(s) for s in normalized]
        self._session.add(model)
        self._session.flush()

        self._auditor.record_workflow_created(
            workflow_id=model.id,
            name=model.name,
            module=module,
            roles=[s.required_role for s in normalized],
            actor_id=actor_id,
        )

        logger.info(
            "workflow_created",
            extra={
                "workflow_id": str(model.id),
                "workflow_name": model.name,
                "workflow_module": module,
                "step_count": len(normalized),
            },
        )
        return model.to_dto()

    def get_workflow(
        self,
        workflow_id: UUID,
        lock_shared: bool = False,
    ) -> WorkflowDefinition:
        """
        Resolve a workflow definition.

        ``lock_shared`` takes a FOR SHARE row lock so a concurrent
        replace_steps() or delete_workflow() waits until the caller commits.

        Raises:
            WorkflowNotFoundError: If no definition has this id.
        """
        return self._get_model(workflow_id, lock_shared=lock_shared).to_dto()

    def list_workflows(
        self,
        company_id: UUID,
        module: str | None = None,
    ) -> list[WorkflowDefinition]:
        query = select(WorkflowDefinitionModel).where(
            WorkflowDefinitionModel.company_id == company_id,
        )
        if module is not None:
            query = query.where(WorkflowDefinitionModel.module == module)
        models = self._session.execute(
            query.order_by(WorkflowDefinitionModel.name)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def find_by_name(
        self,
        company_id: UUID,
        name: str,
        module: str,
    ) -> WorkflowDefinition | None:
        model = self._session.execute(
            select(WorkflowDefinitionModel).where(
                WorkflowDefinitionModel.company_id == company_id,
                WorkflowDefinitionModel.module == module,
                WorkflowDefinitionModel.name == name,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def replace_steps(
        self,
        workflow_id: UUID,
        steps: Iterable[StepSpec],
        actor_id: UUID,
    ) -> WorkflowDefinition:
        """
        Replace the full step list of a definition.

        Raises:
            WorkflowNotFoundError: Unknown workflow.
            WorkflowInUseError: A document using it is in flight.
            InvalidWorkflowError: New steps are invalid.
        """
        model = self._get_model(workflow_id, for_update=True)
        normalized = normalize_steps(steps, workflow_id=str(workflow_id))
        self._ensure_not_in_use(workflow_id)

        # Old rows go first; (workflow_id, step_number) is unique
        model.steps.clear()
        self._session.flush()
        model.steps.extend(self._step_model(s) for s in normalized)
        model.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_workflow_steps_replaced(
            workflow_id=workflow_id,
            roles=[s.required_role for s in normalized],
            actor_id=actor_id,
        )
        logger.info(
            "workflow_steps_replaced",
            extra={"workflow_id": str(workflow_id), "step_count": len(normalized)},
        )
        return model.to_dto()

    def delete_workflow(self, workflow_id: UUID, actor_id: UUID) -> None:
        """
        Delete a definition.

        Raises:
            WorkflowNotFoundError: Unknown workflow.
            WorkflowInUseError: A document using it is in flight.
        """
        model = self._get_model(workflow_id, for_update=True)
        self._ensure_not_in_use(workflow_id)

        name = model.name
        self._session.delete(model)
        self._session.flush()

        self._auditor.record_workflow_deleted(
            workflow_id=workflow_id, name=name, actor_id=actor_id,
        )
        logger.info("workflow_deleted", extra={"workflow_id": str(workflow_id)})

    def count_in_flight(self, workflow_id: UUID) -> int:
        """Number of documents using this workflow that are mid-review."""
        return self._session.execute(
            select(func.count())
            .select_from(DocumentModel)
            .where(
                DocumentModel.workflow_id == workflow_id,
                DocumentModel.status.in_(
                    [s.value for s in IN_FLIGHT_DOCUMENT_STATUSES]
                ),
            )
        ).scalar_one()

    def _ensure_not_in_use(self, workflow_id: UUID) -> None:
        in_flight = self.count_in_flight(workflow_id)
        if in_flight:
            logger.warning(
                "workflow_in_use",
                extra={"workflow_id": str(workflow_id), "in_flight_count": in_flight},
            )
            raise WorkflowInUseError(str(workflow_id), in_flight)

    def _get_model(
        self,
        workflow_id: UUID,
        for_update: bool = False,
        lock_shared: bool = False,
    ) -> WorkflowDefinitionModel:
        query = select(WorkflowDefinitionModel).where(
            WorkflowDefinitionModel.id == workflow_id,
        )
        if for_update:
            query = query.with_for_update()
        elif lock_shared:
            query = query.with_for_update(read=True)
        model = self._session.execute(query).scalar_one_or_none()
        if model is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return model

    @staticmethod
    def _step_model(step: WorkflowStep) -> WorkflowStepModel:
        return WorkflowStepModel(
            step_number=step.step_number,
            step_name=step.step_name,
            required_role=step.required_role,
        )
