"""
Connection Package

Connection configuration, the live Connection value and the manager
that owns it.
"""

from .manager import Connection, ConnectionManager
from .models import BackendType, ConnectionConfig

__all__ = [
    "BackendType",
    "Connection",
    "ConnectionConfig",
    "ConnectionManager",
]
