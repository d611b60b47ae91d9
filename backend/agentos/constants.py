from typing import Final

# Base API prefix (all HTTP routes are served under /api/*)
API_PREFIX: Final = "/api"

# Router prefixes (relative to API_PREFIX)
AGENTS_PREFIX: Final = "/agents"
INTEGRATIONS_PREFIX: Final = "/integrations"
PLUGIN_ENGINE_PREFIX: Final = "/plugin-engine"
ERRORS_PREFIX: Final = f"{PLUGIN_ENGINE_PREFIX}/errors"
CONTEXT_MAPPINGS_PREFIX: Final = f"{PLUGIN_ENGINE_PREFIX}/context-mappings"

# Tools with a first-party adapter and OAuth provider configuration
SUPPORTED_TOOLS: Final = ("gmail", "slack", "notion", "asana")

# Outbound HTTP timeout for third-party APIs (seconds)
HTTP_TIMEOUT: Final = 10.0

# OAuth state / CSRF token lifetime (seconds)
OAUTH_STATE_TTL_SECONDS: Final = 600

# Error Handler thresholds
TOOL_DISABLE_THRESHOLD: Final = 10
DEFAULT_RETRY_LIMIT: Final = 2

# Upper bounds for numeric query parameters; larger values use the default
MAX_PAGE_SIZE: Final = 1000
MAX_WINDOW_DAYS: Final = 365
