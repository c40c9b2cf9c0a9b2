from typing import Iterable, List
import logging

from sqlmodel import Session, select, func

from innovation_hub.db import engine
from innovation_hub.models import AppNotification, User, utcnow
from innovation_hub.permissions import has_any_role

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notifications, stored per recipient."""

    def _build(self, user: User, notification_type: str, payload: dict) -> AppNotification:
        extra = {k: v for k, v in payload.items() if k not in {"title", "message", "related_type", "related_id"}}
        return AppNotification(
            user_id=user.id,
            type=notification_type,
            title=payload["title"],
            message=payload["message"],
            related_type=payload.get("related_type"),
            related_id=payload.get("related_id"),
            data=extra,
        )

    def send_to_user(self, user: User, notification_type: str, payload: dict) -> AppNotification:
        notification = self._build(user, notification_type, payload)
        with Session(engine) as session:
            session.add(notification)
            session.commit()
            session.refresh(notification)
        logger.info("Notification %s (%s) sent to user %s", notification.id, notification_type, user.id)
        return notification

    def users_with_roles(self, roles: Iterable[str]) -> List[User]:
        wanted = [str(r) for r in roles]
        with Session(engine) as session:
            users = session.exec(select(User).where(User.roles != "").order_by(User.id)).all()
        return [u for u in users if has_any_role(u, wanted)]

    def send_to_roles(self, roles: Iterable[str], notification_type: str, payload: dict) -> List[AppNotification]:
        recipients = self.users_with_roles(roles)
        notifications = [self._build(user, notification_type, payload) for user in recipients]
        with Session(engine) as session:
            session.add_all(notifications)
            session.commit()
            for n in notifications:
                session.refresh(n)
        logger.info("Notification %s fanned out to %d users", notification_type, len(notifications))
        return notifications

    def for_user(self, user: User, limit: int = 50) -> List[AppNotification]:
        with Session(engine) as session:
            return session.exec(
                select(AppNotification)
                .where(AppNotification.user_id == user.id)
                .order_by(AppNotification.created_at.desc(), AppNotification.id.desc())
                .limit(limit)
            ).all()

    def unread_count(self, user: User) -> int:
        with Session(engine) as session:
            return session.exec(
                select(func.count(AppNotification.id))
                .where(AppNotification.user_id == user.id, AppNotification.read_at.is_(None))
            ).one()

    def mark_as_read(self, user: User, notification_id: int) -> bool:
        with Session(engine) as session:
            notification = session.get(AppNotification, notification_id)
            if notification is None or notification.user_id != user.id:
                return False
            if notification.read_at is None:
                notification.read_at = utcnow()
                session.add(notification)
                session.commit()
            return True


notification_service = NotificationService()
