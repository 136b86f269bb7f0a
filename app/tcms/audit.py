import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.tcms.models import AuditEvent, User


def dump_metadata(metadata: dict[str, Any] | None) -> str | None:
    """Stable JSON for audit rows; dates and Decimals fall back to str()."""
    if not metadata:
        return None
    return json.dumps(metadata, sort_keys=True, default=str)


def _origin(explicit_request_id: str | None) -> tuple[str | None, str | None]:
    if not has_request_context():
        return explicit_request_id, None
    return explicit_request_id or getattr(g, "request_id", None), request.remote_addr


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Add one row to the audit trail.

    Rows are never updated or deleted. The caller owns the transaction, so an
    event rolls back together with the change it describes.
    """
    rid, ip = _origin(request_id)
    event = AuditEvent(
        request_id=rid,
        client_ip=ip,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=dump_metadata(metadata),
    )
    if actor is not None:
        event.actor_user_id = actor.id
        event.actor_user_email = actor.email
    s.add(event)
    return event
