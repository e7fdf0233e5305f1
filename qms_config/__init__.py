"""
qms_config -- single public entrypoint for QMS configuration.

Responsibility:
    ``get_settings()`` is the only way runtime code obtains settings:
    database connection, log level and engine policy.  Workflow sets
    (YAML lists of approval workflows) are loaded, validated and
    installed into the Workflow Definition Store from here.

Architecture position:
    Configuration -- sits above ``qms_kernel``.  The kernel MUST NEVER
    import from ``qms_config``; ``bridges`` translates settings into
    kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- settings file or workflow set missing.
    - ``ValueError`` -- settings fail validation.
    - ``InvalidWorkflowError`` -- a workflow set fails validation on install.
"""

from __future__ import annotations

import logging
from pathlib import Path

from qms_config.bridges import (
    build_role_gate,
    build_workflow_engine,
    init_database,
    install_workflow_set,
)
from qms_config.loader import apply_env_overrides, load_settings, load_workflow_set
from qms_config.schema import QmsSettings, WorkflowSet
from qms_config.validator import (
    ConfigValidationResult,
    validate_settings,
    validate_workflow_set,
)

_logger = logging.getLogger("qms_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SETTINGS_PATH = _DEFAULT_CONFIG_DIR / "default" / "settings.yaml"
DEFAULT_WORKFLOWS_PATH = _DEFAULT_CONFIG_DIR / "default" / "workflows.yaml"


def get_settings(config_path: Path | str | None = None) -> QmsSettings:
    """
    The public settings entrypoint.

    Reads ``config_path`` (default: ``sets/default/settings.yaml``), then
    applies the ``DATABASE_URL`` and ``QMS_LOG_LEVEL`` environment
    overrides, then validates.

    Raises:
        FileNotFoundError: The settings file does not exist.
        ValueError: The settings fail validation.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_SETTINGS_PATH
    settings = apply_env_overrides(load_settings(path))

    result = validate_settings(settings)
    if not result.is_valid:
        raise ValueError(
            f"Settings in {path} failed validation: " + "; ".join(result.errors)
        )
    for warning in result.warnings:
        _logger.warning("settings_warning", extra={"detail": warning})

    _logger.info(
        "settings_loaded",
        extra={
            "source_path": str(path),
            "log_level": settings.logging.level,
            "cancel_role": settings.engine.cancel_role,
        },
    )
    return settings


__all__ = [
    "ConfigValidationResult",
    "DEFAULT_SETTINGS_PATH",
    "DEFAULT_WORKFLOWS_PATH",
    "QmsSettings",
    "WorkflowSet",
    "build_role_gate",
    "build_workflow_engine",
    "get_settings",
    "init_database",
    "install_workflow_set",
    "load_workflow_set",
    "validate_settings",
    "validate_workflow_set",
]
