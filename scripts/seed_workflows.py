#!/usr/bin/env python3
"""
Install a workflow set into the Workflow Definition Store.

Usage:
    python scripts/seed_workflows.py --company-id UUID --actor-id UUID \
        [--workflows PATH] [--settings PATH]

Defaults to qms_config/sets/default/workflows.yaml.  DATABASE_URL in the
environment overrides the database named in the settings file.

The script:
  1. Loads settings and initializes the database engine
  2. Creates missing tables
  3. Validates the workflow set
  4. Creates every workflow the company does not have yet
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from qms_config import (
    DEFAULT_WORKFLOWS_PATH,
    get_settings,
    init_database,
    install_workflow_set,
    load_workflow_set,
    validate_workflow_set,
)
from qms_kernel.db.engine import create_tables, session_scope
from qms_kernel.db.immutability import register_immutability_listeners
from qms_kernel.logging_config import configure_logging
from qms_kernel.services.workflow_definition_service import WorkflowDefinitionService


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Install approval workflows for a company")
    p.add_argument("--company-id", type=UUID, required=True, help="Company (tenant) id")
    p.add_argument("--actor-id", type=UUID, required=True, help="User recorded as creator")
    p.add_argument(
        "--workflows",
        type=Path,
        default=DEFAULT_WORKFLOWS_PATH,
        help=f"Workflow set YAML (default: {DEFAULT_WORKFLOWS_PATH})",
    )
    p.add_argument("--settings", type=Path, default=None, help="Settings YAML")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    settings = get_settings(args.settings)
    configure_logging(level=settings.logging.level)

    print(f"Loading workflow set from: {args.workflows}")
    workflow_set = load_workflow_set(args.workflows)
    print(f"  name:      {workflow_set.name}")
    print(f"  workflows: {len(workflow_set.workflows)}")
    print(f"  checksum:  {workflow_set.checksum[:16]}...")

    print("Validating...")
    result = validate_workflow_set(workflow_set)
    if not result.is_valid:
        print("VALIDATION FAILED:")
        for err in result.errors:
            print(f"  ERROR: {err}")
        return 1
    for w in result.warnings:
        print(f"  WARNING: {w}")

    init_database(settings)
    create_tables()
    register_immutability_listeners()

    with session_scope() as session:
        service = WorkflowDefinitionService(session)
        installed = install_workflow_set(
            service, workflow_set, args.company_id, args.actor_id,
        )
        for wf in installed:
            roles = " -> ".join(s.required_role for s in wf.steps)
            print(f"  {wf.id}  {wf.name}  [{roles}]")

    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
