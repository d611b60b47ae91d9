"""Integration routes: execute tool actions, list and revoke connections, OAuth."""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from fastapi.responses import RedirectResponse

from agentos.config import Settings
from agentos.core.factory import get_credential_store
from agentos.core.factory import get_oauth_providers
from agentos.core.factory import get_oauth_state
from agentos.core.factory import get_registry
from agentos.core.factory import get_settings_dep
from agentos.dependencies.auth import get_current_user
from agentos.integrations.credentials import CredentialStore
from agentos.integrations.oauth_providers import OAuthError
from agentos.integrations.oauth_providers import OAuthProviders
from agentos.integrations.oauth_state import OAuthStateManager
from agentos.integrations.registry import IntegrationRegistry
from agentos.integrations.types import IntegrationRequest
from agentos.utils.params import read_json_body
from agentos.utils.params import require_fields

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


def _page_redirect(settings: Settings, **query: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.integrations_page_path}?{urlencode(query)}",
        status_code=status.HTTP_302_FOUND,
    )


@router.post("")
async def execute_integration(
    request: Request,
    current_user=Depends(get_current_user),
    registry: IntegrationRegistry = Depends(get_registry),
    credentials: CredentialStore = Depends(get_credential_store),
):
    """Run ``{tool, action, params}`` through the registry."""

    body = await read_json_body(request)
    require_fields(body, ("tool", "action"), "Missing required fields: tool, action")

    params = body.get("params") or {}
    if not isinstance(params, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="'params' must be an object")

    response = await registry.execute_integration(
        IntegrationRequest(
            tool=body["tool"],
            action=body["action"],
            user_id=current_user.id,
            params=params,
            agent_id=body.get("agentId"),
        ),
        credentials,
    )
    return JSONResponse(
        content=response.to_dict(),
        status_code=status.HTTP_200_OK if response.success else status.HTTP_400_BAD_REQUEST,
    )


@router.get("")
async def list_integrations(
    tool: Optional[str] = None,
    current_user=Depends(get_current_user),
    registry: IntegrationRegistry = Depends(get_registry),
    credentials: CredentialStore = Depends(get_credential_store),
):
    """Connection status per tool for the current user."""

    tools = registry.metadata()
    if tool:
        tools = [meta for meta in tools if meta.id == tool]
    rows = await credentials.statuses(current_user.id, tools)
    return {"success": True, "data": rows}


@router.delete("")
async def disconnect_integration(
    request: Request,
    current_user=Depends(get_current_user),
    credentials: CredentialStore = Depends(get_credential_store),
):
    body = await read_json_body(request)
    require_fields(body, ("tool",), "Missing required field: tool")

    if not credentials.disconnect(current_user.id, body["tool"]):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
    return {"success": True, "tool": body["tool"], "message": f"{body['tool']} disconnected"}


@router.get("/tools")
async def available_tools(
    current_user=Depends(get_current_user),
    registry: IntegrationRegistry = Depends(get_registry),
):
    return {"success": True, "data": [meta.to_dict() for meta in registry.metadata()]}


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


@router.get("/oauth/authorize")
async def oauth_authorize(
    tool: Optional[str] = None,
    redirect: bool = False,
    current_user=Depends(get_current_user),
    providers: OAuthProviders = Depends(get_oauth_providers),
    oauth_state: OAuthStateManager = Depends(get_oauth_state),
):
    """Return (or redirect to) the provider's consent URL."""

    if not tool:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required parameter: tool")
    if not providers.supports(tool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported tool: {tool}")

    state = oauth_state.create_oauth_state(current_user.id, tool)
    try:
        auth_url = providers.build_authorization_url(tool, state)
    except OAuthError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    if redirect:
        return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)
    return {"success": True, "data": {"authUrl": auth_url, "tool": tool, "userId": current_user.id}}


@router.get("/oauth/callback")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_settings_dep),
    providers: OAuthProviders = Depends(get_oauth_providers),
    oauth_state: OAuthStateManager = Depends(get_oauth_state),
    credentials: CredentialStore = Depends(get_credential_store),
):
    """Provider redirect target.  Always ends in a redirect to the integrations page."""

    if error:
        logger.warning("OAuth provider returned error: %s", error)
        return _page_redirect(settings, error=error)
    if not code or not state:
        return _page_redirect(settings, error="invalid_callback")

    parsed = oauth_state.parse_oauth_state(state)
    if not parsed.is_valid:
        logger.warning("Rejected OAuth state: %s", parsed.error)
        return _page_redirect(settings, error="invalid_state")

    tool = parsed.tool
    if not tool or not providers.supports(tool):
        return _page_redirect(settings, error="unsupported_tool")

    try:
        tokens = await providers.exchange_code(tool, code)
    except OAuthError as exc:
        logger.error("Token exchange failed for %s: %s", tool, exc)
        return _page_redirect(settings, error="token_exchange_failed")

    credentials.store_tokens(parsed.user_id, tool, tokens)
    return _page_redirect(settings, success="true", tool=tool)


@router.post("/{tool}/test")
async def test_integration(
    tool: str,
    current_user=Depends(get_current_user),
    providers: OAuthProviders = Depends(get_oauth_providers),
    credentials: CredentialStore = Depends(get_credential_store),
):
    """Probe the provider with the stored access token."""

    if not providers.supports(tool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported tool: {tool}")

    auth = await credentials.status(current_user.id, tool)
    credential = credentials.get(current_user.id, tool) if auth.connected else None
    if credential is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=auth.error or "Integration not found")

    result = await providers.test_connection(tool, credential.access_token)
    return JSONResponse(
        content=result,
        status_code=status.HTTP_200_OK if result.get("success") else status.HTTP_400_BAD_REQUEST,
    )
