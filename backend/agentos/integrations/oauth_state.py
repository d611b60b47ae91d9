"""CSRF-protected ``state`` parameter for the OAuth authorization-code flow.

The state handed to the provider is url-safe base64 of
``<user_id>:<tool>:<csrf token>:<issued at, ms>``.  The CSRF token lives in an
in-process store owned by :class:`OAuthStateManager`; parsing a state
consumes its token so a callback can be replayed at most once.
"""

from __future__ import annotations

import base64
import binascii
import secrets
import time
from dataclasses import dataclass
from typing import Callable
from typing import Dict
from typing import Optional

from agentos.constants import OAUTH_STATE_TTL_SECONDS


@dataclass
class _CsrfEntry:
    user_id: Optional[int]
    tool: Optional[str]
    expires: float


@dataclass
class ParsedState:
    user_id: Optional[int]
    tool: Optional[str]
    is_valid: bool
    error: Optional[str] = None


class OAuthStateManager:
    """In-memory CSRF token store.

    One instance is created per application and kept on ``app.state``; a
    multi-process deployment would need a shared store instead.
    """

    def __init__(self, ttl_seconds: int = OAUTH_STATE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self._ttl = ttl_seconds
        self._clock = clock
        self._tokens: Dict[str, _CsrfEntry] = {}

    # ------------------------------------------------------------------
    # CSRF tokens
    # ------------------------------------------------------------------

    def generate_csrf_token(self, user_id: Optional[int] = None, tool: Optional[str] = None) -> str:
        self._purge_expired()
        token = secrets.token_hex(32)
        self._tokens[token] = _CsrfEntry(user_id=user_id, tool=tool, expires=self._clock() + self._ttl)
        return token

    def validate_csrf_token(self, token: str, user_id: Optional[int] = None) -> bool:
        entry = self._tokens.get(token)
        if entry is None:
            return False

        if self._clock() > entry.expires:
            del self._tokens[token]
            return False

        if user_id is not None and entry.user_id is not None and entry.user_id != user_id:
            return False

        return True

    def consume_csrf_token(self, token: str, user_id: Optional[int] = None) -> bool:
        valid = self.validate_csrf_token(token, user_id)
        if valid:
            self._tokens.pop(token, None)
        return valid

    def token_count(self) -> int:
        self._purge_expired()
        return len(self._tokens)

    def _purge_expired(self) -> None:
        now = self._clock()
        for token in [t for t, entry in self._tokens.items() if now > entry.expires]:
            del self._tokens[token]

    # ------------------------------------------------------------------
    # State parameter
    # ------------------------------------------------------------------

    def create_oauth_state(self, user_id: int, tool: Optional[str] = None) -> str:
        csrf = self.generate_csrf_token(user_id, tool)
        issued_ms = int(self._clock() * 1000)
        raw = f"{user_id}:{tool or ''}:{csrf}:{issued_ms}"
        return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")

    def parse_oauth_state(self, state: str) -> ParsedState:
        try:
            padded = state + "=" * (-len(state) % 4)
            decoded = base64.urlsafe_b64decode(padded.encode()).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return ParsedState(user_id=None, tool=None, is_valid=False, error="Failed to parse state parameter")

        parts = decoded.split(":")
        if len(parts) != 4 or not parts[0] or not parts[2] or not parts[3]:
            return ParsedState(user_id=None, tool=None, is_valid=False, error="Invalid state format")

        raw_user, tool, csrf, raw_ts = parts
        try:
            user_id = int(raw_user)
            issued_ms = int(raw_ts)
        except ValueError:
            return ParsedState(user_id=None, tool=None, is_valid=False, error="Invalid state format")

        if self._clock() * 1000 - issued_ms > self._ttl * 1000:
            return ParsedState(user_id=None, tool=None, is_valid=False, error="State parameter expired")

        if not self.consume_csrf_token(csrf, user_id):
            return ParsedState(user_id=None, tool=None, is_valid=False, error="Invalid or expired CSRF token")

        return ParsedState(user_id=user_id, tool=tool or None, is_valid=True)


__all__ = ["OAuthStateManager", "ParsedState"]
