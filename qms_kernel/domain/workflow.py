"""
Workflow definition types (``qms_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for named, ordered approval-step sequences and the
step lookup contract the engine advances on.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``steps`` is non-empty.
* ``step_number`` values are contiguous starting at 1, in order.
* Every step has a non-blank name and a non-blank required role.
* Steps are looked up by explicit 1-indexed ``step_number``, never by
  list position; ``next_step(n)`` is the step numbered ``n + 1``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping
from uuid import UUID

from qms_kernel.exceptions import InvalidWorkflowError

DOCUMENTS_MODULE = "documents"


@dataclass(frozen=True)
class WorkflowStep:
    """One position in a workflow, bound to the role that must act on it."""

    step_number: int
    step_name: str
    required_role: str


@dataclass(frozen=True)
class WorkflowDefinition:
    """A named, ordered list of approval steps for one module of a company.

    Contract: frozen; definitions loaded through the store have already
    passed ``validate()``.
    """

    id: UUID
    company_id: UUID
    name: str
    module: str
    steps: tuple[WorkflowStep, ...]
    created_at: datetime | None = None

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def validate(self) -> None:
        """Raise InvalidWorkflowError unless the step invariants hold."""
        validate_steps(self.steps, workflow_id=str(self.id))

    def first_step(self) -> WorkflowStep:
        """The step a fresh submission enters.

        Raises:
            InvalidWorkflowError: If the definition has no steps.
        """
        if not self.steps:
            raise InvalidWorkflowError(str(self.id), "workflow has no steps")
        return self.step(1)

    def step(self, step_number: int) -> WorkflowStep:
        """Return the step with the given 1-indexed number.

        Raises:
            InvalidWorkflowError: If no step carries that number.
        """
        for s in self.steps:
            if s.step_number == step_number:
                return s
        raise InvalidWorkflowError(
            str(self.id), f"workflow has no step {step_number}",
        )

    def next_step(self, step_number: int) -> WorkflowStep | None:
        """Return the step after ``step_number``, or None if it was the last."""
        for s in self.steps:
            if s.step_number == step_number + 1:
                return s
        return None

    def is_final_step(self, step_number: int) -> bool:
        return self.next_step(step_number) is None


def validate_steps(
    steps: Iterable[WorkflowStep],
    workflow_id: str | None = None,
) -> tuple[WorkflowStep, ...]:
    """Check the step invariants and return the steps as a tuple."""
    steps = tuple(steps)
    if not steps:
        raise InvalidWorkflowError(workflow_id, "workflow has no steps")

    for expected, step in enumerate(steps, start=1):
        if step.step_number != expected:
            raise InvalidWorkflowError(
                workflow_id,
                f"step numbers must be contiguous from 1; "
                f"expected {expected}, got {step.step_number}",
            )
        if not step.step_name or not step.step_name.strip():
            raise InvalidWorkflowError(
                workflow_id, f"step {expected} has no name",
            )
        if not step.required_role or not step.required_role.strip():
            raise InvalidWorkflowError(
                workflow_id, f"step {expected} has no required role",
            )
    return steps


def normalize_steps(
    steps: Iterable[WorkflowStep | Mapping | tuple[str, str]],
    workflow_id: str | None = None,
) -> tuple[WorkflowStep, ...]:
    """Coerce caller-supplied step specs into validated WorkflowSteps.

    Accepts ``WorkflowStep`` instances, mappings with ``step_name`` and
    ``required_role`` (``role_id`` is accepted as an alias, and
    ``step_number`` is optional), or ``(step_name, required_role)``
    pairs.  Positional specs without a number are numbered from 1.
    """
    result: list[WorkflowStep] = []
    for position, spec in enumerate(steps, start=1):
        if isinstance(spec, WorkflowStep):
            result.append(spec)
        elif isinstance(spec, Mapping):
            role = spec.get("required_role", spec.get("role_id"))
            result.append(
                WorkflowStep(
                    step_number=int(spec.get("step_number", position)),
                    step_name=str(spec.get("step_name", "")).strip(),
                    required_role=str(role or "").strip(),
                )
            )
        else:
            step_name, required_role = spec
            result.append(
                WorkflowStep(
                    step_number=position,
                    step_name=str(step_name).strip(),
                    required_role=str(required_role).strip(),
                )
            )
    return validate_steps(result, workflow_id=workflow_id)
