"""AuditService — append-only audit log for catalog refreshes and tax runs.

Static methods so the merger and calculator services can call
AuditService.log_event() directly without DI wiring.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tariff_engine.models.audit import AuditEvent


class AuditService:
    """Static audit event logger and query interface."""

    @staticmethod
    async def log_event(
        db: AsyncSession,
        *,
        event_type: str,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        actor: str = "system",
        event_data: dict | None = None,
        previous_state: dict | None = None,
        new_state: dict | None = None,
    ) -> AuditEvent:
        """Append an audit event."""
        event = AuditEvent(
            id=uuid.uuid4(),
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            event_data=event_data,
            previous_state=previous_state,
            new_state=new_state,
        )
        db.add(event)
        await db.flush()
        return event

    @staticmethod
    async def get_events(
        db: AsyncSession,
        *,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        event_type: str | None = None,
        limit: int = 50,
    ) -> list[AuditEvent]:
        query = select(AuditEvent)
        if entity_type:
            query = query.where(AuditEvent.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditEvent.entity_id == entity_id)
        if event_type:
            query = query.where(AuditEvent.event_type == event_type)
        query = query.order_by(AuditEvent.created_at.desc()).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())
