"""Agent persona routes: CRUD, streaming chat and message history."""

import logging
from typing import List
from typing import Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from fastapi.responses import StreamingResponse

from agentos.core.factory import get_chat_service
from agentos.core.factory import get_repository
from agentos.core.interfaces import Repository
from agentos.dependencies.auth import get_current_user
from agentos.schemas.schemas import AgentCreate
from agentos.schemas.schemas import AgentOut
from agentos.services.chat_service import ChatService
from agentos.services.chat_service import message_to_dict
from agentos.utils.params import positive_int
from agentos.utils.params import read_json_body

logger = logging.getLogger(__name__)

router = APIRouter(tags=["agents"])

MESSAGES_PAGE_SIZE = 100


def _owned_agent(repo: Repository, agent_id: int, current_user):
    agent = repo.get_agent(agent_id)
    if agent is None or agent.owner_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return agent


@router.get("", response_model=List[AgentOut])
def read_agents(current_user=Depends(get_current_user), repo: Repository = Depends(get_repository)):
    return repo.list_agents(current_user.id)


@router.post("", response_model=AgentOut, status_code=status.HTTP_201_CREATED)
def create_agent(
    agent: AgentCreate,
    current_user=Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    return repo.create_agent(
        current_user.id,
        agent.name,
        description=agent.description,
        system_prompt=agent.system_prompt,
        model=agent.model,
    )


@router.get("/{agent_id}", response_model=AgentOut)
def read_agent(agent_id: int, current_user=Depends(get_current_user), repo: Repository = Depends(get_repository)):
    return _owned_agent(repo, agent_id, current_user)


@router.delete("/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_agent(agent_id: int, current_user=Depends(get_current_user), repo: Repository = Depends(get_repository)):
    _owned_agent(repo, agent_id, current_user)
    repo.delete_agent(agent_id)
    return None


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/{agent_id}/chat")
async def chat_with_agent(
    agent_id: int,
    request: Request,
    current_user=Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    chat: ChatService = Depends(get_chat_service),
):
    """Stream the assistant's reply as ``text/plain`` chunks."""

    agent = _owned_agent(repo, agent_id, current_user)
    body = await read_json_body(request)

    try:
        prompt = chat.prepare(agent, current_user.id, body.get("messages"))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return StreamingResponse(
        chat.stream_reply(agent, current_user.id, prompt, model=body.get("model")),
        media_type="text/plain",
    )


@router.get("/{agent_id}/messages")
def read_messages(
    agent_id: int,
    limit: Optional[str] = None,
    current_user=Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    _owned_agent(repo, agent_id, current_user)
    messages = repo.list_chat_messages(agent_id, current_user.id, limit=positive_int(limit, MESSAGES_PAGE_SIZE))
    return {"messages": [message_to_dict(m) for m in messages]}
