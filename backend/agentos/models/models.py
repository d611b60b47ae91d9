import uuid

from sqlalchemy import JSON
from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agentos.database import Base
from agentos.models.enums import ChatRole
from agentos.models.enums import IntegrationStatus
from agentos.models.enums import TaskStatus
from agentos.models.enums import UserRole
from agentos.utils.time import utc_now_naive


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls) -> list[str]:
    # Persist enum *values* ("scheduled"), not member names ("SCHEDULED")
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------------
# Users & agent personas
# ---------------------------------------------------------------------------


class User(Base):
    """Portal user.  Sign-in happens upstream; we only keep identity + role."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    role = Column(
        SAEnum(UserRole, native_enum=False, name="user_role_enum", values_callable=_enum_values),
        nullable=False,
        default=UserRole.USER.value,
    )
    display_name = Column(String, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    agents = relationship("Agent", back_populates="owner", cascade="all, delete-orphan")


class Agent(Base):
    """An AI agent persona owned by a user."""

    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    system_prompt = Column(Text, nullable=True)
    model = Column(String, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="agents")


# ---------------------------------------------------------------------------
# Integration credentials (Credential Store is the only writer)
# ---------------------------------------------------------------------------


class IntegrationCredential(Base):
    __tablename__ = "integration_credentials"
    __table_args__ = (UniqueConstraint("user_id", "tool_name", name="uq_credential_user_tool"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tool_name = Column(String, nullable=False)

    # Fernet ciphertext – see agentos.utils.crypto
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    scopes = Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    status = Column(
        SAEnum(IntegrationStatus, native_enum=False, name="integration_status_enum", values_callable=_enum_values),
        nullable=False,
        default=IntegrationStatus.ACTIVE.value,
    )
    # ``metadata`` is reserved on declarative classes
    extra = Column("metadata", MutableDict.as_mutable(JSON), nullable=False, default=dict)

    created_at = Column(DateTime, default=utc_now_naive, server_default=func.now())
    updated_at = Column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)


# ---------------------------------------------------------------------------
# Scheduled tasks
# ---------------------------------------------------------------------------


class ScheduledTask(Base):
    """An intent queued for execution at ``scheduled_time``.

    Status only moves forward (scheduled → running → completed|failed,
    scheduled → cancelled) apart from the manual failed → scheduled retry.
    ``worker_token`` identifies the scheduler run that claimed the row.
    """

    __tablename__ = "scheduled_tasks"

    id = Column(String, primary_key=True, default=_uuid_str)
    agent_id = Column(String, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    tool = Column(String, nullable=False)
    intent = Column(String, nullable=False)
    context = Column(MutableDict.as_mutable(JSON), nullable=False, default=dict)
    scheduled_time = Column(DateTime, nullable=False, index=True)
    status = Column(
        SAEnum(TaskStatus, native_enum=False, name="task_status_enum", values_callable=_enum_values),
        nullable=False,
        default=TaskStatus.SCHEDULED.value,
        index=True,
    )
    attempts = Column(Integer, nullable=False, default=0)
    worker_token = Column(String, nullable=True)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utc_now_naive, server_default=func.now())
    updated_at = Column(DateTime, default=utc_now_naive, onupdate=utc_now_naive, index=True)


# ---------------------------------------------------------------------------
# Error handler tables
# ---------------------------------------------------------------------------


class ErrorRecord(Base):
    __tablename__ = "error_records"

    id = Column(String, primary_key=True, default=_uuid_str)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    agent_id = Column(String, nullable=True, index=True)
    tool = Column(String, nullable=False, index=True)
    action = Column(String, nullable=True)
    error_code = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utc_now_naive, server_default=func.now(), index=True)
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime, nullable=True)


class FallbackMessage(Base):
    """User-facing substitute text; ``agent_id`` NULL means tool-wide."""

    __tablename__ = "fallback_messages"
    __table_args__ = (UniqueConstraint("tool", "agent_id", name="uq_fallback_tool_agent"),)

    id = Column(Integer, primary_key=True, index=True)
    tool = Column(String, nullable=False, index=True)
    agent_id = Column(String, nullable=True)
    message = Column(Text, nullable=False)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)


# ---------------------------------------------------------------------------
# Chat history & dead letters
# ---------------------------------------------------------------------------


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SAEnum(ChatRole, native_enum=False, name="chat_role_enum", values_callable=_enum_values), nullable=False)
    content = Column(Text, nullable=False)
    extra = Column("metadata", MutableDict.as_mutable(JSON), nullable=False, default=dict)
    created_at = Column(DateTime, default=utc_now_naive, server_default=func.now(), index=True)


class DeadLetter(Base):
    """A write that failed after the client response was already sent."""

    __tablename__ = "dead_letters"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    error = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utc_now_naive, server_default=func.now())


# ---------------------------------------------------------------------------
# Context mappings (agent context key → external tool id)
# ---------------------------------------------------------------------------


class ContextMapping(Base):
    __tablename__ = "context_mappings"
    __table_args__ = (UniqueConstraint("agent_id", "tool", "context_key", name="uq_context_mapping"),)

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(String, nullable=False, index=True)
    tool = Column(String, nullable=False)
    context_key = Column(String, nullable=False)
    external_id = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now_naive, server_default=func.now())
