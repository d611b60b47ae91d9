"""Structured logger shared by services that emit machine-readable events.

Regular diagnostics use ``logging.getLogger(__name__)``.  Events that
operators alert on (dead letters, claim conflicts, token refresh failures)
go through *structlog* so they render as JSON key/value records::

    from agentos.utils.log import log

    log.warning("chat-dead-letter", agent_id=agent_id, error=str(exc))
"""

from __future__ import annotations

import logging

import structlog

if not structlog.is_configured():
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    )

# Keep the logger global so every import shares the same base instance.
log = structlog.get_logger("agentos")


__all__ = ["log"]
