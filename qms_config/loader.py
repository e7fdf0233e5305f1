"""
Configuration Loader (``qms_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``qms_config.schema``.  Runtime callers go through
``qms_config.get_settings()`` / ``qms_config.load_workflow_set()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required workflow fields.
* Environment overrides are applied after the file is parsed, so a
  deployment can point the same settings file at another database.
* ``compute_checksum`` produces a deterministic SHA-256 hash of a
  workflow set for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from qms_config.schema import (
    DatabaseSettings,
    EngineSettings,
    LoggingSettings,
    QmsSettings,
    WorkflowDef,
    WorkflowSet,
    WorkflowStepDef,
)

ENV_DATABASE_URL = "DATABASE_URL"
ENV_LOG_LEVEL = "QMS_LOG_LEVEL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def parse_settings(data: dict[str, Any], source_path: str | None = None) -> QmsSettings:
    """Parse a settings dict; missing sections fall back to defaults."""
    db = data.get("database") or {}
    log = data.get("logging") or {}
    eng = data.get("engine") or {}

    database = DatabaseSettings(
        url=str(db.get("url", DatabaseSettings.url)),
        echo=bool(db.get("echo", False)),
        pool_size=int(db.get("pool_size", DatabaseSettings.pool_size)),
        max_overflow=int(db.get("max_overflow", DatabaseSettings.max_overflow)),
        pool_timeout=int(db.get("pool_timeout", DatabaseSettings.pool_timeout)),
        pool_recycle=int(db.get("pool_recycle", DatabaseSettings.pool_recycle)),
        busy_timeout=int(db.get("busy_timeout", DatabaseSettings.busy_timeout)),
    )
    logging_settings = LoggingSettings(level=str(log.get("level", "INFO")).upper())
    engine = EngineSettings(
        override_roles=tuple(eng.get("override_roles", ("admin",)) or ()),
        cancel_role=str(eng.get("cancel_role", "admin")),
        document_module=str(eng.get("document_module", "documents")),
    )
    return QmsSettings(
        database=database,
        logging=logging_settings,
        engine=engine,
        source_path=source_path,
    )


def apply_env_overrides(
    settings: QmsSettings,
    environ: Mapping[str, str] | None = None,
) -> QmsSettings:
    """Return ``settings`` with DATABASE_URL / QMS_LOG_LEVEL applied."""
    environ = os.environ if environ is None else environ

    if environ.get(ENV_DATABASE_URL):
        settings = replace(
            settings,
            database=replace(settings.database, url=environ[ENV_DATABASE_URL]),
        )
    if environ.get(ENV_LOG_LEVEL):
        settings = replace(
            settings,
            logging=replace(settings.logging, level=environ[ENV_LOG_LEVEL].upper()),
        )
    return settings


def load_settings(path: Path) -> QmsSettings:
    return parse_settings(load_yaml_file(path), source_path=str(path))


# ---------------------------------------------------------------------------
# Workflow sets
# ---------------------------------------------------------------------------


def parse_step(data: dict[str, Any]) -> WorkflowStepDef:
    """``role_id`` is accepted as an alias of ``required_role``."""
    role = data.get("required_role", data.get("role_id"))
    if role is None:
        raise KeyError(f"step {data.get('step_name')!r} has no required_role")
    number = data.get("step_number")
    return WorkflowStepDef(
        step_name=str(data["step_name"]),
        required_role=str(role),
        step_number=int(number) if number is not None else None,
    )


def parse_workflow(data: dict[str, Any], default_module: str = "documents") -> WorkflowDef:
    return WorkflowDef(
        name=str(data["name"]),
        module=str(data.get("module", default_module)),
        steps=tuple(parse_step(s) for s in data.get("steps") or ()),
        description=str(data.get("description", "")),
    )


def compute_checksum(workflows: tuple[WorkflowDef, ...]) -> str:
    canonical = json.dumps(
        [asdict(wf) for wf in workflows],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_workflow_set(path: Path) -> WorkflowSet:
    """
    Parse a workflow-set YAML file.

    Expected layout::

        name: default
        workflows:
          - name: Standard approval
            module: documents
            steps:
              - {step_name: Quality review, required_role: role_qa}

    Raises:
        KeyError: a workflow or step lacks a required field.
    """
    data = load_yaml_file(path)
    workflows = tuple(parse_workflow(w) for w in data.get("workflows") or ())
    return WorkflowSet(
        name=str(data.get("name", Path(path).parent.name)),
        workflows=workflows,
        checksum=compute_checksum(workflows),
    )
