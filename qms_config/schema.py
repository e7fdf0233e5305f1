"""
QMS configuration schema.

Frozen dataclasses for the two kinds of YAML the system reads: runtime
settings (database, logging, engine policy) and workflow sets, the
reviewable source artifact from which workflow definitions are installed
into the Workflow Definition Store.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///qms.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    busy_timeout: int = 30  # SQLite only


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class EngineSettings:
    """Engine policy knobs.

    ``override_roles`` satisfy every role check in their company;
    ``cancel_role`` may move documents to canceled.
    """

    override_roles: tuple[str, ...] = ("admin",)
    cancel_role: str = "admin"
    document_module: str = "documents"


@dataclass(frozen=True)
class QmsSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    source_path: str | None = None


# ---------------------------------------------------------------------------
# Workflow sets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowStepDef:
    step_name: str
    required_role: str
    step_number: int | None = None


@dataclass(frozen=True)
class WorkflowDef:
    """One workflow as authored in YAML."""

    name: str
    module: str
    steps: tuple[WorkflowStepDef, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class WorkflowSet:
    """A named, checksummed collection of workflow definitions."""

    name: str
    workflows: tuple[WorkflowDef, ...] = ()
    checksum: str = ""

    def get(self, name: str) -> WorkflowDef | None:
        for wf in self.workflows:
            if wf.name == name:
                return wf
        return None
