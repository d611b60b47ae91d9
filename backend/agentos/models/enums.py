"""Shared *Enum* definitions for SQLAlchemy models and API payloads.

The Enums inherit from ``str`` so that JSON serialisation renders plain
strings and comparisons against raw literals (``task.status == "failed"``)
keep working.
"""

from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class IntegrationStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    ERROR = "error"


class TaskStatus(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


__all__ = [
    "UserRole",
    "IntegrationStatus",
    "TaskStatus",
    "ChatRole",
]
