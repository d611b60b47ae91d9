"""Abstract data-access interface.

Every service (Credential Store, Task Scheduler, Error Handler, Chat Service,
Context Mapper) depends on :class:`Repository` only.  There is exactly one
concrete implementation, :class:`agentos.core.implementations.SQLAlchemyRepository`;
tests may substitute fakes without touching the ORM.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from datetime import datetime
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from agentos.models.models import Agent
from agentos.models.models import ChatMessage
from agentos.models.models import ContextMapping
from agentos.models.models import DeadLetter
from agentos.models.models import ErrorRecord
from agentos.models.models import FallbackMessage
from agentos.models.models import IntegrationCredential
from agentos.models.models import ScheduledTask
from agentos.models.models import User


class Repository(ABC):
    """Abstract interface for all persistence used by the services."""

    # User operations ----------------------------------------------------
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def create_user(self, email: str, **fields: Any) -> User:
        pass

    # Agent operations ---------------------------------------------------
    @abstractmethod
    def create_agent(self, owner_id: int, name: str, **fields: Any) -> Agent:
        pass

    @abstractmethod
    def get_agent(self, agent_id: int) -> Optional[Agent]:
        pass

    @abstractmethod
    def list_agents(self, owner_id: int) -> List[Agent]:
        pass

    @abstractmethod
    def delete_agent(self, agent_id: int) -> bool:
        pass

    # Credential operations ----------------------------------------------
    @abstractmethod
    def get_credential(self, user_id: int, tool: str) -> Optional[IntegrationCredential]:
        pass

    @abstractmethod
    def list_credentials(self, user_id: int) -> List[IntegrationCredential]:
        pass

    @abstractmethod
    def upsert_credential(self, user_id: int, tool: str, **fields: Any) -> IntegrationCredential:
        """Insert or update the single credential row for ``(user_id, tool)``."""

    @abstractmethod
    def update_credential(self, credential: IntegrationCredential, **fields: Any) -> IntegrationCredential:
        pass

    # Scheduled task operations ------------------------------------------
    @abstractmethod
    def create_task(self, **fields: Any) -> ScheduledTask:
        pass

    @abstractmethod
    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        pass

    @abstractmethod
    def list_tasks(
        self, agent_id: str, status: Optional[str] = None, limit: int = 10, user_id: Optional[int] = None
    ) -> List[ScheduledTask]:
        """Tasks for *agent_id* (optionally owned by *user_id*) ordered by ``scheduled_time`` ascending."""

    @abstractmethod
    def list_due_task_ids(self, now: datetime, limit: int) -> List[str]:
        pass

    @abstractmethod
    def claim_task(self, task_id: str, worker_token: str) -> bool:
        """Atomically move a ``scheduled`` task to ``running`` for *worker_token*.

        Returns *False* when the task is gone or no longer ``scheduled``
        (e.g. another worker claimed it first).
        """

    @abstractmethod
    def finish_task(
        self,
        task_id: str,
        worker_token: str,
        status: str,
        result: Any = None,
        error: Optional[str] = None,
    ) -> bool:
        """Write the outcome of a claimed task; no-op unless *worker_token* still owns it."""

    @abstractmethod
    def transition_task(self, task_id: str, from_status: str, to_status: str, **fields: Any) -> bool:
        """Conditional status change; returns *False* (and writes nothing) on mismatch."""

    @abstractmethod
    def delete_finished_tasks(self, before: datetime, statuses: Iterable[str], batch_size: int = 100) -> int:
        pass

    # Error operations ---------------------------------------------------
    @abstractmethod
    def create_error(self, **fields: Any) -> ErrorRecord:
        pass

    @abstractmethod
    def get_error(self, error_id: str) -> Optional[ErrorRecord]:
        pass

    @abstractmethod
    def list_errors(self, agent_id: str, limit: int = 10) -> List[ErrorRecord]:
        """Newest first."""

    @abstractmethod
    def count_errors(self, agent_id: Optional[str], tool: str, since: datetime) -> int:
        pass

    @abstractmethod
    def errors_since(self, since: datetime, tool: Optional[str] = None) -> List[ErrorRecord]:
        pass

    @abstractmethod
    def resolve_errors(self, error_ids: Iterable[str], resolved_at: datetime) -> int:
        """Mark existing ids resolved; unknown ids are skipped."""

    # Fallback message operations ----------------------------------------
    @abstractmethod
    def get_fallback(self, tool: str, agent_id: Optional[str]) -> Optional[FallbackMessage]:
        pass

    @abstractmethod
    def upsert_fallback(
        self, tool: str, agent_id: Optional[str], message: str, updated_by: Optional[str] = None
    ) -> FallbackMessage:
        pass

    # Chat operations ----------------------------------------------------
    @abstractmethod
    def add_chat_message(
        self, user_id: int, agent_id: int, role: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> ChatMessage:
        pass

    @abstractmethod
    def list_chat_messages(self, agent_id: int, user_id: int, limit: int = 10) -> List[ChatMessage]:
        """The *limit* most recent messages, returned oldest first."""

    # Dead letters -------------------------------------------------------
    @abstractmethod
    def add_dead_letter(self, kind: str, payload: Dict[str, Any], error: str) -> DeadLetter:
        pass

    @abstractmethod
    def list_dead_letters(self, kind: Optional[str] = None, limit: int = 100) -> List[DeadLetter]:
        pass

    # Context mappings ---------------------------------------------------
    @abstractmethod
    def create_mapping(self, **fields: Any) -> ContextMapping:
        pass

    @abstractmethod
    def get_mapping(self, agent_id: str, tool: str, context_key: str) -> Optional[ContextMapping]:
        pass

    @abstractmethod
    def get_mapping_by_external_id(self, agent_id: str, tool: str, external_id: str) -> Optional[ContextMapping]:
        pass

    @abstractmethod
    def delete_mapping(self, agent_id: str, tool: str, context_key: str) -> bool:
        pass

    @abstractmethod
    def list_mappings(self, agent_id: str, tool: str) -> List[ContextMapping]:
        pass

    @abstractmethod
    def update_mapping(self, mapping: ContextMapping, **fields: Any) -> ContextMapping:
        pass
