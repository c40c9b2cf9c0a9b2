from datetime import date, datetime
from typing import Any, Optional
import enum
import logging

from fastapi import Request
from sqlmodel import Session

from innovation_hub.db import engine
from innovation_hub.models import AuditLog

logger = logging.getLogger("innovation_hub.audit")


def to_jsonable(value: Any) -> Any:
    """Turn model dumps into something the JSON columns accept."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, "model_dump"):
        return to_jsonable(value.model_dump())
    return str(value)


class AuditService:
    """Stores who did what to which record."""

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        old_values: Optional[Any] = None,
        new_values: Optional[Any] = None,
        actor_id: Optional[int] = None,
        request: Optional[Request] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=to_jsonable(old_values),
            new_values=to_jsonable(new_values),
        )
        if request is not None:
            entry.ip_address = request.client.host if request.client else None
            entry.user_agent = request.headers.get("user-agent")

        with Session(engine) as session:
            session.add(entry)
            session.commit()
            session.refresh(entry)

        logger.info(
            "AUDIT action=%s entity=%s:%s actor=%s entry=%s",
            action, entity_type, entity_id, actor_id if actor_id is not None else "-", entry.id,
        )
        return entry


audit_service = AuditService()
