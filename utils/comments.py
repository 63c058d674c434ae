"""Append-only comment threads on complaints, with internal/public visibility."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

from flask import current_app

from extensions import db
from models import Comment, Complaint, ComplaintActivity
from utils.access_policy import can_comment, can_see_internal, can_view, enforce
from utils.errors import ValidationFailed
from utils.identity import ActingUser
from utils.notifications import NotificationDraft, fan_out
from utils.security import clean_text
from utils.transactions import atomic


@dataclass
class CommentPage:
    comments: List[Comment]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.comments) < self.total

    def to_dict(self) -> dict:
        return {
            "comments": [c.to_dict() for c in self.comments],
            "pagination": {
                "total": self.total,
                "limit": self.limit,
                "offset": self.offset,
                "hasMore": self.has_more,
            },
        }


def _validated_content(content: Any) -> str:
    max_length = int(current_app.config.get("COMMENT_MAX_LENGTH", 2000))
    if content is not None and not isinstance(content, str):
        raise ValidationFailed("Comment content must be text", fields={"content": ["Must be a string"]})
    text = clean_text(content)
    if not text:
        raise ValidationFailed("Comment content is required", fields={"content": ["This field is required."]})
    if len(text) > max_length:
        raise ValidationFailed(
            f"Comment must be at most {max_length} characters",
            fields={"content": [f"Field cannot be longer than {max_length} characters."]},
        )
    return text


def _comment_drafts(actor: ActingUser, complaint: Complaint) -> List[NotificationDraft]:
    author = actor.name or "Someone"
    drafts = [
        NotificationDraft(
            recipient_id=complaint.user_id,
            title="New Comment",
            message=f"{author} commented on your complaint: {complaint.title}",
            type="COMMENT_ADDED",
            complaint_id=complaint.id,
        )
    ]
    # The reporter already has a draft; an assignee who is also the reporter gets one notice.
    if complaint.assigned_to_id and complaint.assigned_to_id != complaint.user_id:
        drafts.append(
            NotificationDraft(
                recipient_id=complaint.assigned_to_id,
                title="New Comment",
                message=f"{author} commented on a complaint assigned to you: {complaint.title}",
                type="COMMENT_ADDED",
                complaint_id=complaint.id,
            )
        )
    return drafts


def add_comment(actor: ActingUser, complaint_id: str, content: Any, is_internal: Any = False) -> Comment:
    text = _validated_content(content)
    requested_internal = is_internal is True or (isinstance(is_internal, str) and is_internal.lower() == "true")
    complaint = enforce(
        actor,
        db.session.get(Complaint, complaint_id),
        lambda a, c: can_comment(a, c, requested_internal),
        message="You cannot comment on this complaint",
    )
    # Callers without internal visibility asking for an internal note get a public one.
    internal = requested_internal and can_see_internal(actor, complaint)
    if requested_internal and not internal:
        current_app.logger.info(
            "internal_flag_downgraded",
            extra={"complaint_id": complaint.id, "role": actor.role},
        )

    with atomic("create_comment", complaint_id=complaint.id):
        comment = Comment(
            complaint_id=complaint.id,
            author_id=actor.id,
            content=text,
            is_internal=internal,
        )
        db.session.add(comment)
        db.session.add(
            ComplaintActivity(
                complaint_id=complaint.id,
                user_id=actor.id,
                action="COMMENT_ADDED",
                new_value="internal" if internal else "public",
                comment="Added an internal comment" if internal else "Added a comment",
            )
        )
        notifications = [] if internal else fan_out(actor, _comment_drafts(actor, complaint))

    current_app.logger.info(
        "comment_added",
        extra={
            "complaint_id": complaint.id,
            "comment_id": comment.id,
            "internal": internal,
            "notifications": len(notifications),
        },
    )
    return comment


def _page_bounds(limit: Any, offset: Any) -> tuple[int, int]:
    default_limit = int(current_app.config.get("COMMENTS_PAGE_SIZE", 20))
    max_limit = int(current_app.config.get("COMMENTS_MAX_PAGE_SIZE", 100))
    try:
        limit = default_limit if limit in (None, "") else int(limit)
        offset = 0 if offset in (None, "") else int(offset)
    except (TypeError, ValueError):
        raise ValidationFailed("limit and offset must be integers")
    if not 1 <= limit <= max_limit:
        raise ValidationFailed(f"limit must be between 1 and {max_limit}", fields={"limit": ["Out of range"]})
    if offset < 0:
        raise ValidationFailed("offset must not be negative", fields={"offset": ["Out of range"]})
    return limit, offset


def list_comments(actor: ActingUser, complaint_id: str, limit: Any = None, offset: Any = None) -> CommentPage:
    limit, offset = _page_bounds(limit, offset)
    complaint = enforce(actor, db.session.get(Complaint, complaint_id), can_view)

    query = Comment.query.filter_by(complaint_id=complaint.id)
    if not can_see_internal(actor, complaint):
        query = query.filter(Comment.is_internal.is_(False))

    total = query.count()
    comments = (
        query.order_by(Comment.created_at.asc(), Comment.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return CommentPage(comments=comments, total=total, limit=limit, offset=offset)
