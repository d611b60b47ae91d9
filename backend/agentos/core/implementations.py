"""SQLAlchemy-backed :class:`~agentos.core.interfaces.Repository`.

Write methods commit before returning.  The
scheduled-task state machine is enforced here with conditional ``UPDATE``
statements so that two workers can never both own the same row.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from sqlalchemy.orm import Session

from agentos.core.interfaces import Repository
from agentos.models.enums import TaskStatus
from agentos.models.models import Agent
from agentos.models.models import ChatMessage
from agentos.models.models import ContextMapping
from agentos.models.models import DeadLetter
from agentos.models.models import ErrorRecord
from agentos.models.models import FallbackMessage
from agentos.models.models import IntegrationCredential
from agentos.models.models import ScheduledTask
from agentos.models.models import User
from agentos.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class SQLAlchemyRepository(Repository):
    """Repository bound to a single SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, email: str, **fields: Any) -> User:
        return self._save(User(email=email, **fields))

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(self, owner_id: int, name: str, **fields: Any) -> Agent:
        return self._save(Agent(owner_id=owner_id, name=name, **fields))

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        return self.db.query(Agent).filter(Agent.id == agent_id).first()

    def list_agents(self, owner_id: int) -> List[Agent]:
        return self.db.query(Agent).filter(Agent.owner_id == owner_id).order_by(Agent.id).all()

    def delete_agent(self, agent_id: int) -> bool:
        agent = self.get_agent(agent_id)
        if agent is None:
            return False
        # SQLite does not enforce ON DELETE CASCADE without a pragma
        self.db.query(ChatMessage).filter(ChatMessage.agent_id == agent_id).delete(synchronize_session=False)
        self.db.delete(agent)
        self.db.commit()
        return True

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def get_credential(self, user_id: int, tool: str) -> Optional[IntegrationCredential]:
        return (
            self.db.query(IntegrationCredential)
            .filter(IntegrationCredential.user_id == user_id, IntegrationCredential.tool_name == tool)
            .first()
        )

    def list_credentials(self, user_id: int) -> List[IntegrationCredential]:
        return (
            self.db.query(IntegrationCredential)
            .filter(IntegrationCredential.user_id == user_id)
            .order_by(IntegrationCredential.tool_name)
            .all()
        )

    def upsert_credential(self, user_id: int, tool: str, **fields: Any) -> IntegrationCredential:
        credential = self.get_credential(user_id, tool)
        if credential is None:
            return self._save(IntegrationCredential(user_id=user_id, tool_name=tool, **fields))
        return self.update_credential(credential, **fields)

    def update_credential(self, credential: IntegrationCredential, **fields: Any) -> IntegrationCredential:
        for key, value in fields.items():
            setattr(credential, key, value)
        credential.updated_at = utc_now_naive()
        return self._save(credential)

    # ------------------------------------------------------------------
    # Scheduled tasks
    # ------------------------------------------------------------------

    def create_task(self, **fields: Any) -> ScheduledTask:
        return self._save(ScheduledTask(**fields))

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self.db.query(ScheduledTask).filter(ScheduledTask.id == task_id).first()

    def list_tasks(
        self, agent_id: str, status: Optional[str] = None, limit: int = 10, user_id: Optional[int] = None
    ) -> List[ScheduledTask]:
        query = self.db.query(ScheduledTask).filter(ScheduledTask.agent_id == agent_id)
        if user_id is not None:
            query = query.filter(ScheduledTask.user_id == user_id)
        if status:
            query = query.filter(ScheduledTask.status == status)
        return query.order_by(ScheduledTask.scheduled_time.asc(), ScheduledTask.id).limit(limit).all()

    def list_due_task_ids(self, now: datetime, limit: int) -> List[str]:
        rows = (
            self.db.query(ScheduledTask.id)
            .filter(ScheduledTask.status == TaskStatus.SCHEDULED, ScheduledTask.scheduled_time <= now)
            .order_by(ScheduledTask.scheduled_time.asc())
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    def claim_task(self, task_id: str, worker_token: str) -> bool:
        updated = (
            self.db.query(ScheduledTask)
            .filter(ScheduledTask.id == task_id, ScheduledTask.status == TaskStatus.SCHEDULED)
            .update(
                {
                    ScheduledTask.status: TaskStatus.RUNNING,
                    ScheduledTask.worker_token: worker_token,
                    ScheduledTask.attempts: ScheduledTask.attempts + 1,
                    ScheduledTask.updated_at: utc_now_naive(),
                },
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        return updated == 1

    def finish_task(
        self,
        task_id: str,
        worker_token: str,
        status: str,
        result: Any = None,
        error: Optional[str] = None,
    ) -> bool:
        updated = (
            self.db.query(ScheduledTask)
            .filter(
                ScheduledTask.id == task_id,
                ScheduledTask.status == TaskStatus.RUNNING,
                ScheduledTask.worker_token == worker_token,
            )
            .update(
                {
                    ScheduledTask.status: status,
                    ScheduledTask.result: result,
                    ScheduledTask.error: error,
                    ScheduledTask.updated_at: utc_now_naive(),
                },
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        if updated != 1:
            logger.warning("Task %s no longer owned by worker %s; outcome dropped", task_id, worker_token)
        return updated == 1

    def transition_task(self, task_id: str, from_status: str, to_status: str, **fields: Any) -> bool:
        values: Dict[Any, Any] = {ScheduledTask.status: to_status, ScheduledTask.updated_at: utc_now_naive()}
        for key, value in fields.items():
            values[getattr(ScheduledTask, key)] = value
        updated = (
            self.db.query(ScheduledTask)
            .filter(ScheduledTask.id == task_id, ScheduledTask.status == from_status)
            .update(values, synchronize_session="fetch")
        )
        self.db.commit()
        return updated == 1

    def delete_finished_tasks(self, before: datetime, statuses: Iterable[str], batch_size: int = 100) -> int:
        statuses = list(statuses)
        deleted = 0
        while True:
            ids = [
                row[0]
                for row in self.db.query(ScheduledTask.id)
                .filter(ScheduledTask.status.in_(statuses), ScheduledTask.updated_at < before)
                .limit(batch_size)
                .all()
            ]
            if not ids:
                break
            deleted += (
                self.db.query(ScheduledTask).filter(ScheduledTask.id.in_(ids)).delete(synchronize_session="fetch")
            )
            self.db.commit()
            if len(ids) < batch_size:
                break
        return deleted

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def create_error(self, **fields: Any) -> ErrorRecord:
        return self._save(ErrorRecord(**fields))

    def get_error(self, error_id: str) -> Optional[ErrorRecord]:
        return self.db.query(ErrorRecord).filter(ErrorRecord.id == error_id).first()

    def list_errors(self, agent_id: str, limit: int = 10) -> List[ErrorRecord]:
        return (
            self.db.query(ErrorRecord)
            .filter(ErrorRecord.agent_id == agent_id)
            .order_by(ErrorRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def count_errors(self, agent_id: Optional[str], tool: str, since: datetime) -> int:
        query = self.db.query(ErrorRecord).filter(ErrorRecord.tool == tool, ErrorRecord.created_at >= since)
        if agent_id is None:
            query = query.filter(ErrorRecord.agent_id.is_(None))
        else:
            query = query.filter(ErrorRecord.agent_id == agent_id)
        return query.count()

    def errors_since(self, since: datetime, tool: Optional[str] = None) -> List[ErrorRecord]:
        query = self.db.query(ErrorRecord).filter(ErrorRecord.created_at >= since)
        if tool:
            query = query.filter(ErrorRecord.tool == tool)
        return query.order_by(ErrorRecord.created_at.asc()).all()

    def resolve_errors(self, error_ids: Iterable[str], resolved_at: datetime) -> int:
        ids = list(error_ids)
        if not ids:
            return 0
        updated = (
            self.db.query(ErrorRecord)
            .filter(ErrorRecord.id.in_(ids))
            .update({ErrorRecord.resolved: True, ErrorRecord.resolved_at: resolved_at}, synchronize_session="fetch")
        )
        self.db.commit()
        return updated

    # ------------------------------------------------------------------
    # Fallback messages
    # ------------------------------------------------------------------

    def get_fallback(self, tool: str, agent_id: Optional[str]) -> Optional[FallbackMessage]:
        query = self.db.query(FallbackMessage).filter(FallbackMessage.tool == tool)
        # NULL never compares equal, so the tool-wide row needs IS NULL
        if agent_id is None:
            query = query.filter(FallbackMessage.agent_id.is_(None))
        else:
            query = query.filter(FallbackMessage.agent_id == agent_id)
        return query.first()

    def upsert_fallback(
        self, tool: str, agent_id: Optional[str], message: str, updated_by: Optional[str] = None
    ) -> FallbackMessage:
        row = self.get_fallback(tool, agent_id)
        if row is None:
            row = FallbackMessage(tool=tool, agent_id=agent_id)
        row.message = message
        row.updated_by = updated_by
        row.updated_at = utc_now_naive()
        return self._save(row)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def add_chat_message(
        self, user_id: int, agent_id: int, role: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> ChatMessage:
        return self._save(
            ChatMessage(user_id=user_id, agent_id=agent_id, role=role, content=content, extra=metadata or {})
        )

    def list_chat_messages(self, agent_id: int, user_id: int, limit: int = 10) -> List[ChatMessage]:
        newest = (
            self.db.query(ChatMessage)
            .filter(ChatMessage.agent_id == agent_id, ChatMessage.user_id == user_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(newest))

    # ------------------------------------------------------------------
    # Dead letters
    # ------------------------------------------------------------------

    def add_dead_letter(self, kind: str, payload: Dict[str, Any], error: str) -> DeadLetter:
        return self._save(DeadLetter(kind=kind, payload=payload, error=error))

    def list_dead_letters(self, kind: Optional[str] = None, limit: int = 100) -> List[DeadLetter]:
        query = self.db.query(DeadLetter)
        if kind:
            query = query.filter(DeadLetter.kind == kind)
        return query.order_by(DeadLetter.id.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Context mappings
    # ------------------------------------------------------------------

    def create_mapping(self, **fields: Any) -> ContextMapping:
        return self._save(ContextMapping(**fields))

    def get_mapping(self, agent_id: str, tool: str, context_key: str) -> Optional[ContextMapping]:
        return (
            self.db.query(ContextMapping)
            .filter(
                ContextMapping.agent_id == agent_id,
                ContextMapping.tool == tool,
                ContextMapping.context_key == context_key,
            )
            .first()
        )

    def get_mapping_by_external_id(self, agent_id: str, tool: str, external_id: str) -> Optional[ContextMapping]:
        return (
            self.db.query(ContextMapping)
            .filter(
                ContextMapping.agent_id == agent_id,
                ContextMapping.tool == tool,
                ContextMapping.external_id == external_id,
            )
            .first()
        )

    def delete_mapping(self, agent_id: str, tool: str, context_key: str) -> bool:
        mapping = self.get_mapping(agent_id, tool, context_key)
        if mapping is None:
            return False
        self.db.delete(mapping)
        self.db.commit()
        return True

    def list_mappings(self, agent_id: str, tool: str) -> List[ContextMapping]:
        return (
            self.db.query(ContextMapping)
            .filter(ContextMapping.agent_id == agent_id, ContextMapping.tool == tool)
            .order_by(ContextMapping.context_key)
            .all()
        )

    def update_mapping(self, mapping: ContextMapping, **fields: Any) -> ContextMapping:
        for key, value in fields.items():
            setattr(mapping, key, value)
        return self._save(mapping)
