"""
QMS Kernel - document approval workflow engine

A task-driven approval workflow for quality-management documents with:
- Ordered, role-bound approval steps
- One open task per document version at any time
- Atomic step advancement (conditional task close)
- Append-only approval history and hash-chained audit trail
- Rejection / resubmission loop back to the author
"""

__version__ = "0.1.0"
