"""
Infrastructure Logging Package
==============================
Append-only audit trail for actuations and safety events.
"""

from .audit import AuditLogger, MemoryAuditLogger

__all__ = ["AuditLogger", "MemoryAuditLogger"]
