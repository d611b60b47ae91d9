"""Streaming chat with an agent persona.

The user's message is stored before the model is called; the assistant's
reply is stored after the stream finishes, in its own session, because the
response has already been sent by then.  A failed post-stream write is kept
as a ``DeadLetter`` row instead of being lost.
"""

from __future__ import annotations

import logging
from typing import Any
from typing import AsyncIterator
from typing import Dict
from typing import List
from typing import Optional
from typing import Protocol

from openai import AsyncOpenAI

from agentos.config import Settings
from agentos.core.implementations import SQLAlchemyRepository
from agentos.core.interfaces import Repository
from agentos.database import db_session
from agentos.metrics import chat_dead_letters_total
from agentos.models.enums import ChatRole
from agentos.models.models import Agent
from agentos.utils.log import log
from agentos.utils.time import isoformat_z

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
DEAD_LETTER_KIND = "chat_message"


class ChatLLM(Protocol):
    def stream(self, model: str, messages: List[Dict[str, str]], max_tokens: int) -> AsyncIterator[str]:
        ...


class OpenAIChatLLM:
    """``AsyncOpenAI`` streaming completions; the client is created on first use."""

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def stream(self, model: str, messages: List[Dict[str, str]], max_tokens: int) -> AsyncIterator[str]:
        response = await self._get_client().chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            stream=True,
        )
        async for chunk in response:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content


def validate_messages(messages: Any) -> str:
    """Return the content of the last user message or raise ``ValueError``."""

    if not isinstance(messages, list) or not messages:
        raise ValueError("messages must be a non-empty list")

    for message in messages:
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise ValueError("each message needs a role and string content")
        if message.get("role") not in ("user", "assistant", "system"):
            raise ValueError(f"invalid message role: {message.get('role')}")

    last = messages[-1]
    if last["role"] != "user" or not last["content"].strip():
        raise ValueError("the last message must be a non-empty user message")
    return last["content"]


def build_system_prompt(agent: Agent) -> str:
    parts = [f"You are {agent.name}."]
    if agent.description:
        parts.append(agent.description)
    if agent.system_prompt:
        parts.append(agent.system_prompt)
    return " ".join(parts)


class ChatService:
    def __init__(
        self,
        repository: Repository,
        llm: ChatLLM,
        settings: Settings,
        session_factory: Any = None,
    ):
        self._repo = repository
        self._llm = llm
        self._model = settings.chat_model
        self._max_tokens = settings.chat_max_tokens
        # ``None`` → agentos.database.get_session_factory() at write time
        self._session_factory = session_factory

    def prepare(self, agent: Agent, user_id: int, messages: Any) -> List[Dict[str, str]]:
        """Persist the incoming user message and return the prompt for the model."""

        content = validate_messages(messages)
        self._repo.add_chat_message(user_id, agent.id, ChatRole.USER.value, content)

        prompt = [{"role": "system", "content": build_system_prompt(agent)}]
        for stored in self._repo.list_chat_messages(agent.id, user_id, limit=HISTORY_LIMIT):
            prompt.append({"role": getattr(stored.role, "value", stored.role), "content": stored.content})
        return prompt

    async def stream_reply(
        self, agent: Agent, user_id: int, prompt: List[Dict[str, str]], model: Optional[str] = None
    ) -> AsyncIterator[str]:
        """Yield model tokens as they arrive, then store the full reply.

        A model stream that fails part way ends the response early; the text
        received so far is kept as a dead letter.
        """

        agent_id = agent.id
        model = model or agent.model or self._model
        parts: List[str] = []
        try:
            async for token in self._llm.stream(model, prompt, self._max_tokens):
                parts.append(token)
                yield token
        except Exception as exc:  # noqa: BLE001 – headers are already sent; end the stream cleanly
            log.error("chat-stream-failed", agent_id=agent_id, user_id=user_id, model=model, error=str(exc))
            self._dead_letter(agent_id, user_id, "".join(parts), model, exc)
            return

        reply = "".join(parts)
        try:
            self._store_assistant_message(agent_id, user_id, reply, model)
        except Exception as exc:  # noqa: BLE001 – response already sent; keep the reply as a dead letter
            self._dead_letter(agent_id, user_id, reply, model, exc)

    def _store_assistant_message(self, agent_id: int, user_id: int, content: str, model: str) -> None:
        with db_session(self._session_factory) as db:
            SQLAlchemyRepository(db).add_chat_message(
                user_id, agent_id, ChatRole.ASSISTANT.value, content, metadata={"model": model}
            )

    def _dead_letter(self, agent_id: int, user_id: int, content: str, model: str, exc: Exception) -> None:
        chat_dead_letters_total.inc()
        log.error("chat-dead-letter", agent_id=agent_id, user_id=user_id, error=str(exc))
        payload = {
            "agent_id": agent_id,
            "user_id": user_id,
            "role": ChatRole.ASSISTANT.value,
            "content": content,
            "metadata": {"model": model},
        }
        try:
            with db_session(self._session_factory) as db:
                SQLAlchemyRepository(db).add_dead_letter(DEAD_LETTER_KIND, payload, str(exc))
        except Exception:  # noqa: BLE001 – last resort, the log line above carries the payload
            logger.exception("Could not persist dead letter for agent %s", agent_id)
            log.error("chat-dead-letter-lost", payload=payload)


def message_to_dict(message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "agentId": message.agent_id,
        "role": getattr(message.role, "value", message.role),
        "content": message.content,
        "metadata": dict(message.extra or {}),
        "createdAt": isoformat_z(message.created_at),
    }


__all__ = ["ChatService", "ChatLLM", "OpenAIChatLLM", "validate_messages", "build_system_prompt", "message_to_dict"]
