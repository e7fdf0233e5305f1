"""Read-only selectors for the QMS kernel."""

from qms_kernel.selectors.base import BaseSelector
from qms_kernel.selectors.document_selector import DocumentSelector
from qms_kernel.selectors.task_selector import TaskSelector

__all__ = [
    "BaseSelector",
    "DocumentSelector",
    "TaskSelector",
]
