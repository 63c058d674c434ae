"""Notification fan-out rules and inbox operations scoped to their owner."""
from datetime import timedelta

import pytest

from extensions import db
from models import Notification, utcnow
from utils.errors import Forbidden, NotFound
from utils.notifications import (
    NotificationDraft,
    delete_all_notifications,
    delete_notification,
    fan_out,
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)


def _store(user_id, title, minutes_ago=0, is_read=False):
    notification = Notification(
        user_id=user_id,
        title=title,
        message=f"{title} message",
        type="STATUS_UPDATED",
        is_read=is_read,
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    db.session.add(notification)
    db.session.commit()
    return notification.id


class TestFanOut:
    def test_drops_actor_and_duplicate_pairs(self, ctx, people):
        actor, reporter, staff = people["admin"], people["reporter"], people["staff"]
        drafts = [
            NotificationDraft(reporter.id, "Status Updated", "now in progress", "STATUS_UPDATED"),
            NotificationDraft(reporter.id, "Status Updated", "again", "STATUS_UPDATED"),
            NotificationDraft(actor.id, "Status Updated", "to self", "STATUS_UPDATED"),
            NotificationDraft(staff.id, "New Assignment", "yours", "COMPLAINT_ASSIGNED"),
            NotificationDraft(reporter.id, "New Comment", "comment", "COMMENT_ADDED"),
        ]
        staged = fan_out(actor, drafts)
        db.session.commit()

        assert sorted((n.user_id, n.type) for n in staged) == sorted(
            [
                (reporter.id, "STATUS_UPDATED"),
                (staff.id, "COMPLAINT_ASSIGNED"),
                (reporter.id, "COMMENT_ADDED"),
            ]
        )
        assert Notification.query.filter_by(user_id=actor.id).count() == 0

    def test_unknown_type_is_a_programming_error(self, ctx, people):
        with pytest.raises(ValueError):
            fan_out(people["admin"], [NotificationDraft(people["reporter"].id, "t", "m", "SOMETHING")])


class TestInbox:
    def test_lists_unread_first_then_newest(self, ctx, people):
        owner = people["reporter"]
        old_unread = _store(owner.id, "old unread", minutes_ago=30)
        new_read = _store(owner.id, "new read", minutes_ago=1, is_read=True)
        new_unread = _store(owner.id, "new unread", minutes_ago=5)
        _store(people["other"].id, "someone else")

        ids = [n.id for n in list_notifications(owner)]
        assert ids == [new_unread, old_unread, new_read]
        assert unread_count(owner) == 2

    def test_mark_read_is_owner_only(self, ctx, people):
        notification_id = _store(people["reporter"].id, "mine")

        with pytest.raises(Forbidden):
            mark_read(people["other"], notification_id)
        with pytest.raises(NotFound):
            mark_read(people["reporter"], "missing")

        assert mark_read(people["reporter"], notification_id).is_read is True

    def test_mark_all_read_touches_only_own_rows(self, ctx, people):
        owner, other = people["reporter"], people["other"]
        _store(owner.id, "a")
        _store(owner.id, "b")
        _store(other.id, "c")

        assert mark_all_read(owner) == 2
        assert unread_count(owner) == 0
        assert unread_count(other) == 1

    def test_delete_is_owner_only(self, ctx, people):
        notification_id = _store(people["reporter"].id, "mine")
        with pytest.raises(Forbidden):
            delete_notification(people["other"], notification_id)

        delete_notification(people["reporter"], notification_id)
        assert db.session.get(Notification, notification_id) is None

    def test_delete_all_leaves_other_inboxes(self, ctx, people):
        _store(people["reporter"].id, "a")
        _store(people["reporter"].id, "b")
        _store(people["other"].id, "c")

        assert delete_all_notifications(people["reporter"]) == 2
        assert Notification.query.count() == 1
