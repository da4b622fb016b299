import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..enums import NotificationType, UserStatus
from ..errors import NotFoundError
from ..extensions import db
from ..models import Notification, User
from ..realtime import broadcaster

logger = logging.getLogger(__name__)


class NotificationWriter:
    """Persists one notification row per recipient and pushes it to the user's room.

    ``create`` commits its own row and raises on failure. ``notify`` and
    ``notify_many`` are the best-effort variants used after a lifecycle
    transaction has committed: a failed write is rolled back, logged and
    skipped.
    """

    def __init__(self, publisher):
        self.publisher = publisher

    def create(self, type, title, body, user_id, metadata=None):
        notification = Notification(
            type=NotificationType.parse(type).value,
            title=title,
            body=body,
            user_id=user_id,
            meta=metadata or {},
        )
        db.session.add(notification)
        db.session.commit()
        self.publisher.send_notification(user_id, notification.to_dict())
        return notification

    def notify(self, type, title, body, user_id, metadata=None):
        try:
            return self.create(type, title, body, user_id, metadata)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"Failed to create {type} notification for user {user_id}: {str(e)}")
            return None

    def notify_many(self, user_ids, type, title, body, metadata=None):
        created = []
        for user_id in dict.fromkeys(user_ids):
            notification = self.notify(type, title, body, user_id, metadata)
            if notification is not None:
                created.append(notification)
        return created


notification_writer = NotificationWriter(broadcaster)


@contextmanager
def best_effort(action):
    """Guard the fan-out that follows a committed transition.

    Recipient lookups and lazy loads in the block hit the store again; if that
    fails the session is rolled back and the error logged, so the caller still
    sees its transition succeed.
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Failed to {action}: {str(e)}")


def active_user_ids(roles=None, organization_id=None):
    query = User.query.filter_by(status=UserStatus.ACTIVE.value)
    if roles:
        query = query.filter(User.role.in_([str(r) for r in roles]))
    if organization_id is not None:
        query = query.filter_by(organization_id=organization_id)
    return [u.id for u in query.all()]


def list_for_user(user_id, unread_only=False):
    query = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc()).limit(200).all()


def mark_as_read(notification_id, user_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_as_read(user_id):
    count = Notification.query.filter_by(user_id=user_id, is_read=False).update({'is_read': True})
    db.session.commit()
    logger.info(f"Marked {count} notifications read for user {user_id}")
    return count
