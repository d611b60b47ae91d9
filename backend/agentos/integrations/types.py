"""Value objects shared by adapters, the registry and the plugin engine."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from agentos.utils.time import isoformat_z


@dataclass
class PluginMetadata:
    id: str
    name: str
    description: str
    version: str = "1.0.0"
    author: str = "AgentOS"
    scopes: List[str] = field(default_factory=list)
    config_schema: Optional[Dict[str, Any]] = None
    actions: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "scopes": list(self.scopes),
            "actions": {kind: list(names) for kind, names in self.actions.items()},
        }
        if self.config_schema is not None:
            data["configSchema"] = self.config_schema
        return data


@dataclass
class AuthStatus:
    connected: bool
    expires_at: Optional[datetime] = None
    error: Optional[str] = None
    scopes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"connected": self.connected, "scopes": list(self.scopes)}
        if self.expires_at is not None:
            data["expiresAt"] = isoformat_z(self.expires_at)
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class PluginResult:
    """Outcome of a single adapter call.

    ``error`` is ``{"code", "message", "details"?}`` when ``success`` is false.
    """

    success: bool
    message: Optional[str] = None
    data: Any = None
    external_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def failure(cls, message: str, code: str, detail: Optional[str] = None, **extra: Any) -> "PluginResult":
        error: Dict[str, Any] = {"code": code, "message": detail or message}
        if extra:
            error["details"] = extra
        return cls(success=False, message=message, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.message is not None:
            data["message"] = self.message
        if self.data is not None:
            data["data"] = self.data
        if self.external_id is not None:
            data["externalId"] = self.external_id
        if self.metadata is not None:
            data["metadata"] = self.metadata
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class Credential:
    """Decrypted view of an ``IntegrationCredential`` row."""

    user_id: int
    tool: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = field(default_factory=list)
    status: str = "active"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenSet:
    """Tokens returned by a provider's token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IntegrationRequest:
    tool: str
    action: str
    user_id: int
    params: Dict[str, Any] = field(default_factory=dict)
    agent_id: Optional[str] = None


@dataclass
class IntegrationResponse:
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "metadata": self.metadata}
        if self.data is not None:
            data["data"] = self.data
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class TaskIntent:
    agent_id: str
    tool: str
    intent: str
    user_id: Optional[int] = None
    context: Dict[str, Any] = field(default_factory=dict)
    scheduled_time: Optional[datetime] = None
