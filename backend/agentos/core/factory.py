"""Service wiring.

Process-wide objects (registry, OAuth provider config, CSRF state store, LLM
client) are built once by :func:`build_services` and stored on
``app.state.services``.  Everything that needs a database session is built
per request by the ``get_*`` dependency providers below, so tests can swap
any layer through ``app.dependency_overrides``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends
from fastapi import Request
from sqlalchemy.orm import Session

from agentos.config import Settings
from agentos.core.implementations import SQLAlchemyRepository
from agentos.core.interfaces import Repository
from agentos.database import get_db
from agentos.integrations.credentials import CredentialStore
from agentos.integrations.oauth_providers import OAuthProviders
from agentos.integrations.oauth_state import OAuthStateManager
from agentos.integrations.registry import IntegrationRegistry
from agentos.integrations.registry import build_default_registry
from agentos.services.chat_service import ChatLLM
from agentos.services.chat_service import ChatService
from agentos.services.chat_service import OpenAIChatLLM
from agentos.services.context_mapper import ContextMapper
from agentos.services.error_handler import ErrorHandler
from agentos.services.plugin_engine import PluginEngine
from agentos.services.task_scheduler import TaskScheduler


@dataclass
class Services:
    settings: Settings
    registry: IntegrationRegistry
    providers: OAuthProviders
    oauth_state: OAuthStateManager
    llm: ChatLLM


def build_services(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    llm: Optional[ChatLLM] = None,
) -> Services:
    """Build the process-wide services; *transport* is shared by every outbound client."""

    return Services(
        settings=settings,
        registry=build_default_registry(transport=transport),
        providers=OAuthProviders(settings, transport=transport),
        oauth_state=OAuthStateManager(),
        llm=llm or OpenAIChatLLM(api_key=settings.openai_api_key),
    )


def build_plugin_engine(services: Services, repository: Repository) -> PluginEngine:
    """Assemble a :class:`PluginEngine` over *repository* (used outside requests too)."""

    return PluginEngine(
        registry=services.registry,
        credentials=CredentialStore(repository, services.providers),
        error_handler=ErrorHandler(repository),
        scheduler=TaskScheduler(repository, batch_size=services.settings.task_batch_size),
    )


# ---------------------------------------------------------------------------
# FastAPI dependency providers
# ---------------------------------------------------------------------------


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_settings_dep(services: Services = Depends(get_services)) -> Settings:
    return services.settings


def get_registry(services: Services = Depends(get_services)) -> IntegrationRegistry:
    return services.registry


def get_oauth_providers(services: Services = Depends(get_services)) -> OAuthProviders:
    return services.providers


def get_oauth_state(services: Services = Depends(get_services)) -> OAuthStateManager:
    return services.oauth_state


def get_repository(db: Session = Depends(get_db)) -> Repository:
    return SQLAlchemyRepository(db)


def get_credential_store(
    repo: Repository = Depends(get_repository),
    providers: OAuthProviders = Depends(get_oauth_providers),
) -> CredentialStore:
    return CredentialStore(repo, providers)


def get_error_handler(repo: Repository = Depends(get_repository)) -> ErrorHandler:
    return ErrorHandler(repo)


def get_task_scheduler(
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings_dep),
) -> TaskScheduler:
    return TaskScheduler(repo, batch_size=settings.task_batch_size)


def get_plugin_engine(
    registry: IntegrationRegistry = Depends(get_registry),
    credentials: CredentialStore = Depends(get_credential_store),
    error_handler: ErrorHandler = Depends(get_error_handler),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
) -> PluginEngine:
    return PluginEngine(registry, credentials, error_handler, scheduler)


def get_context_mapper(repo: Repository = Depends(get_repository)) -> ContextMapper:
    return ContextMapper(repo)


def get_chat_service(
    repo: Repository = Depends(get_repository),
    services: Services = Depends(get_services),
) -> ChatService:
    return ChatService(repo, services.llm, services.settings)


__all__ = [
    "Services",
    "build_services",
    "build_plugin_engine",
    "get_services",
    "get_settings_dep",
    "get_registry",
    "get_oauth_providers",
    "get_oauth_state",
    "get_repository",
    "get_credential_store",
    "get_error_handler",
    "get_task_scheduler",
    "get_plugin_engine",
    "get_context_mapper",
    "get_chat_service",
]
