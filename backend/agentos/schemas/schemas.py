from datetime import datetime
from typing import Any
from typing import Dict
from typing import Optional

from pydantic import BaseModel
from pydantic import field_validator


# Agent persona schemas
class AgentBase(BaseModel):
    name: str
    description: Optional[str] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None


class AgentCreate(AgentBase):
    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("'name' must be a non-empty string")
        return value.strip()


class AgentOut(AgentBase):
    id: int
    owner_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ------------------------------------------------------------
# Admin
# ------------------------------------------------------------


class DeadLetterOut(BaseModel):
    id: int
    kind: str
    payload: Dict[str, Any]
    error: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserOut(BaseModel):
    id: int
    email: str
    role: str
    display_name: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True
