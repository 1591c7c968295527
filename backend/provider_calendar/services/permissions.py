# backend/provider_calendar/services/permissions.py
"""
Ownership predicates.

The request layer composes these and raises ``ForbiddenException`` itself;
the services never authorize.
"""

from typing import Any


def is_owner(actor_id: str, entity: Any) -> bool:
    """True when ``actor_id`` is the provider that owns the block or reservation."""
    return actor_id is not None and getattr(entity, "provider_id", None) == actor_id


def is_counterparty(actor_id: str, request: Any) -> bool:
    """True when ``actor_id`` is the party asked to respond to a reschedule request."""
    return actor_id is not None and getattr(request, "requested_for", None) == actor_id


def is_party(actor_id: str, request: Any) -> bool:
    """True when ``actor_id`` either made or received the reschedule request."""
    if actor_id is None:
        return False
    return actor_id in (
        getattr(request, "requested_by", None),
        getattr(request, "requested_for", None),
    )
