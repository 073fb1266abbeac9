# Overview: Audit trail sink interface and the default database-backed sink.

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Protocol

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditEvent
"""
Audit Trail Invariants

- Every state-changing core call emits exactly one AuditRecord.
- Emission is fire-and-forget: a sink failure is logged and never
  propagates into, or rolls back, the business operation.
- The core does not own the storage format; sinks do.
"""

logger = logging.getLogger(__name__)

AUDIT_SINK_KEY = "audit_sink"


@dataclass
class AuditRecord:
    shop_id: int
    actor_id: int
    action: str
    resource: str
    resource_id: Optional[str]
    before: Optional[dict] = None
    after: Optional[dict] = None
    branch_id: Optional[int] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class AuditSink(Protocol):
    def emit(self, record: AuditRecord) -> None:
        ...


class DatabaseAuditSink:
    """
    Persist records as AuditEvent rows in the caller's transaction.

    The insert runs inside a SAVEPOINT so a failed audit write rolls back
    only itself.
    """

    def emit(self, record: AuditRecord) -> None:
        after = record.after
        if record.extra:
            after = {**(after or {}), **record.extra}
        try:
            with db.session.begin_nested():
                db.session.add(AuditEvent(
                    shop_id=record.shop_id,
                    branch_id=record.branch_id,
                    actor_id=record.actor_id,
                    action=record.action,
                    resource=record.resource,
                    resource_id=record.resource_id,
                    before=record.before,
                    after=after,
                ))
        except SQLAlchemyError:
            logger.exception("Failed to persist audit event %s for %s %s",
                             record.action, record.resource, record.resource_id)


def get_audit_sink() -> AuditSink:
    sink = current_app.extensions.get(AUDIT_SINK_KEY)
    if sink is None:
        sink = DatabaseAuditSink()
        current_app.extensions[AUDIT_SINK_KEY] = sink
    return sink


def emit_audit(
    *,
    shop_id: int,
    actor_id: int,
    action: str,
    resource: str,
    resource_id: Any,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    branch_id: Optional[int] = None,
    **extra,
) -> None:
    """Hand a record to the configured sink without letting it fail the caller."""
    record = AuditRecord(
        shop_id=shop_id,
        actor_id=actor_id,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        before=before,
        after=after,
        branch_id=branch_id,
        extra=extra,
    )
    try:
        get_audit_sink().emit(record)
    except Exception:
        # Sinks are external collaborators; the core never blocks on them.
        logger.exception("Audit sink rejected %s for %s %s", action, resource, record.resource_id)


def list_audit_events(
    shop_id: int,
    *,
    resource: str | None = None,
    resource_id: Any = None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent).filter_by(shop_id=shop_id)
    if resource:
        query = query.filter_by(resource=resource)
    if resource_id is not None:
        query = query.filter_by(resource_id=str(resource_id))
    if action:
        query = query.filter_by(action=action)
    return query.order_by(AuditEvent.id.desc()).limit(min(limit, 500)).all()
