"""
Configuration Validator (``qms_config.validator``).

Responsibility
--------------
Checks settings and workflow sets before they are used: a workflow set
that fails here must not be installed.

Invariants enforced
-------------------
* Workflow names are unique per module.
* Every workflow has at least one step; explicit step numbers are
  contiguous from 1; step names and roles are non-blank.
* Engine override/cancel roles are non-blank.

Failure modes
-------------
* ``ConfigValidationResult.errors``  -> configuration MUST NOT be used.
* ``ConfigValidationResult.warnings`` -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from qms_config.schema import QmsSettings, WorkflowDef, WorkflowSet


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_settings(settings: QmsSettings) -> ConfigValidationResult:
    result = ConfigValidationResult()

    try:
        url = make_url(settings.database.url)
    except ArgumentError as exc:
        result.add_error(f"database.url is not a valid URL: {exc}")
    else:
        if url.get_backend_name() not in ("postgresql", "sqlite"):
            result.add_warning(
                f"database backend {url.get_backend_name()!r} is untested; "
                "use postgresql or sqlite"
            )

    if settings.database.pool_size < 1:
        result.add_error("database.pool_size must be >= 1")

    if not settings.engine.cancel_role.strip():
        result.add_error("engine.cancel_role must not be blank")
    for role in settings.engine.override_roles:
        if not str(role).strip():
            result.add_error("engine.override_roles contains a blank role")
    if not settings.engine.override_roles:
        result.add_warning("engine.override_roles is empty; no actor can see every task")

    return result


def _validate_workflow(wf: WorkflowDef, result: ConfigValidationResult) -> None:
    label = f"workflow {wf.name!r}"
    if not wf.name.strip():
        result.add_error("a workflow has a blank name")
    if not wf.steps:
        result.add_error(f"{label} has no steps")
        return

    seen_names: set[str] = set()
    for position, step in enumerate(wf.steps, start=1):
        if step.step_number is not None and step.step_number != position:
            result.add_error(
                f"{label}: step numbers must be contiguous from 1; "
                f"expected {position}, got {step.step_number}"
            )
        if not step.step_name.strip():
            result.add_error(f"{label}: step {position} has no name")
        if not step.required_role.strip():
            result.add_error(f"{label}: step {position} has no required role")
        if step.step_name in seen_names:
            result.add_warning(f"{label}: step name {step.step_name!r} is repeated")
        seen_names.add(step.step_name)


def validate_workflow_set(workflow_set: WorkflowSet) -> ConfigValidationResult:
    """Validate every workflow of a set."""
    result = ConfigValidationResult()

    if not workflow_set.workflows:
        result.add_warning(f"workflow set {workflow_set.name!r} defines no workflows")

    seen: set[tuple[str, str]] = set()
    for wf in workflow_set.workflows:
        key = (wf.module, wf.name)
        if key in seen:
            result.add_error(f"duplicate workflow {wf.name!r} in module {wf.module!r}")
        seen.add(key)
        _validate_workflow(wf, result)

    return result
