"""Input/output helpers for gitpersona."""

from .audit import AuditTrail, JsonlAuditSink, MemoryAuditSink
from .config import load_config
from .logging import StructuredLogger
from .store import JsonConfigStore, MemoryConfigStore

__all__ = [
    "AuditTrail",
    "JsonConfigStore",
    "JsonlAuditSink",
    "MemoryAuditSink",
    "MemoryConfigStore",
    "StructuredLogger",
    "load_config",
]
