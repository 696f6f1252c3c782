"""
Schemas Package
===============

Pydantic models for the payloads written to durable storage.
"""

from gardenrig.schemas.history import MoistureHistoryPayload, ShutdownLogPayload

__all__ = [
    "MoistureHistoryPayload",
    "ShutdownLogPayload",
]
