"""Notification fan-out and the per-user inbox operations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from flask import current_app

from extensions import db
from models import NOTIFICATION_TYPES, Notification
from utils.errors import Forbidden, NotFound
from utils.identity import ActingUser
from utils.transactions import atomic


@dataclass(frozen=True)
class NotificationDraft:
    recipient_id: str
    title: str
    message: str
    type: str
    complaint_id: Optional[str] = None


def fan_out(actor: ActingUser, drafts: Iterable[NotificationDraft]) -> List[Notification]:
    """Stage notification rows in the current session; the caller commits.

    Drafts addressed to the actor are dropped, as are repeats of the same
    (recipient, type) pair within one batch.
    """
    staged: List[Notification] = []
    seen: set[tuple[str, str]] = set()
    for draft in drafts:
        if not draft.recipient_id or draft.recipient_id == actor.id:
            continue
        if draft.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type {draft.type}")
        key = (draft.recipient_id, draft.type)
        if key in seen:
            continue
        seen.add(key)
        notification = Notification(
            user_id=draft.recipient_id,
            complaint_id=draft.complaint_id,
            title=draft.title,
            message=draft.message,
            type=draft.type,
        )
        db.session.add(notification)
        staged.append(notification)
    return staged


def _owned_notification(actor: ActingUser, notification_id: str) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if not notification:
        raise NotFound("Notification not found")
    if notification.user_id != actor.id:
        current_app.logger.warning(
            "Cross-user notification access denied",
            extra={"notification_id": notification_id, "owner_id": notification.user_id},
        )
        raise Forbidden()
    return notification


def list_notifications(actor: ActingUser) -> List[Notification]:
    return (
        Notification.query.filter_by(user_id=actor.id)
        .order_by(Notification.is_read.asc(), Notification.created_at.desc())
        .all()
    )


def unread_count(actor: ActingUser) -> int:
    return Notification.query.filter_by(user_id=actor.id, is_read=False).count()


def mark_read(actor: ActingUser, notification_id: str) -> Notification:
    notification = _owned_notification(actor, notification_id)
    with atomic("mark_notification_read", notification_id=notification_id):
        notification.is_read = True
    return notification


def mark_all_read(actor: ActingUser) -> int:
    with atomic("mark_all_notifications_read"):
        updated = (
            Notification.query.filter_by(user_id=actor.id, is_read=False)
            .update({Notification.is_read: True}, synchronize_session="fetch")
        )
    current_app.logger.info("notifications_marked_read", extra={"count": updated})
    return updated


def delete_notification(actor: ActingUser, notification_id: str) -> None:
    notification = _owned_notification(actor, notification_id)
    with atomic("delete_notification", notification_id=notification_id):
        db.session.delete(notification)


def delete_all_notifications(actor: ActingUser) -> int:
    with atomic("delete_all_notifications"):
        deleted = Notification.query.filter_by(user_id=actor.id).delete(synchronize_session="fetch")
    current_app.logger.info("notifications_deleted", extra={"count": deleted})
    return deleted
