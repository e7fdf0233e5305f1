"""
Config -> Kernel Bridges.

Functions that turn configuration artifacts into kernel objects.  They
live in qms_config (the producer) because the kernel must never import
qms_config.

Usage:
    settings = get_settings()
    init_database(settings)
    gate = build_role_gate(settings, role_map)
    engine = build_workflow_engine(session, gate, settings)
"""

from __future__ import annotations

from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from qms_config.schema import QmsSettings, WorkflowSet
from qms_config.validator import validate_workflow_set
from qms_kernel.db.engine import init_engine_from_url
from qms_kernel.domain.authorization import StaticRoleGate
from qms_kernel.domain.clock import Clock
from qms_kernel.domain.workflow import WorkflowDefinition
from qms_kernel.exceptions import InvalidWorkflowError
from qms_kernel.logging_config import get_logger
from qms_kernel.services.workflow_definition_service import WorkflowDefinitionService
from qms_kernel.services.workflow_engine import WorkflowEngine

logger = get_logger("config.bridges")


def init_database(settings: QmsSettings) -> Engine:
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        busy_timeout=db.busy_timeout,
    )


def build_role_gate(
    settings: QmsSettings,
    role_map: Mapping[UUID, Iterable[str]] | None = None,
    memberships: Mapping[UUID, UUID] | None = None,
) -> StaticRoleGate:
    return StaticRoleGate(
        role_map=role_map,
        memberships=memberships,
        override_roles=settings.engine.override_roles,
    )


def build_workflow_engine(
    session: Session,
    gate: StaticRoleGate,
    settings: QmsSettings,
    clock: Clock | None = None,
) -> WorkflowEngine:
    return WorkflowEngine(
        session,
        gate,
        clock=clock,
        cancel_role=settings.engine.cancel_role,
        document_module=settings.engine.document_module,
    )


def install_workflow_set(
    service: WorkflowDefinitionService,
    workflow_set: WorkflowSet,
    company_id: UUID,
    actor_id: UUID,
) -> list[WorkflowDefinition]:
    """
    Create every workflow of ``workflow_set`` for ``company_id``.

    Workflows that already exist for the company (same module and name)
    are left untouched, so installing a set twice is harmless.

    Raises:
        InvalidWorkflowError: The set fails validation; nothing is created.
    """
    result = validate_workflow_set(workflow_set)
    if not result.is_valid:
        raise InvalidWorkflowError(workflow_set.name, "; ".join(result.errors))
    for warning in result.warnings:
        logger.warning("workflow_set_warning", extra={"detail": warning})

    installed: list[WorkflowDefinition] = []
    for wf in workflow_set.workflows:
        existing = service.find_by_name(company_id, wf.name, wf.module)
        if existing is not None:
            logger.info(
                "workflow_already_installed",
                extra={"workflow_name": wf.name, "workflow_id": str(existing.id)},
            )
            installed.append(existing)
            continue
        installed.append(
            service.create_workflow(
                company_id=company_id,
                name=wf.name,
                module=wf.module,
                steps=[(s.step_name, s.required_role) for s in wf.steps],
                actor_id=actor_id,
            )
        )

    logger.info(
        "workflow_set_installed",
        extra={
            "workflow_set": workflow_set.name,
            "checksum": workflow_set.checksum,
            "workflow_count": len(installed),
        },
    )
    return installed
