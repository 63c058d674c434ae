"""Account removal shared by citizen and staff administration."""
from flask import current_app

from extensions import db
from models import Comment, ComplaintActivity, Notification, User
from utils.errors import ValidationFailed
from utils.identity import ActingUser
from utils.transactions import atomic


def deletion_blocker(actor: ActingUser, user: User) -> str | None:
    """Reason the account cannot be removed, or None."""
    if user.id == actor.id:
        return "You cannot delete your own account"
    submitted = user.complaints.count()
    if submitted:
        return f"Cannot delete user with {submitted} complaint(s). Deactivate the account instead."
    assigned = user.assigned_complaints.count()
    if assigned:
        return f"Cannot delete staff member with {assigned} assigned complaint(s). Reassign them first."
    authored = Comment.query.filter_by(author_id=user.id).count()
    if authored:
        return f"Cannot delete user who authored {authored} comment(s). Deactivate the account instead."
    return None


def remove_account(actor: ActingUser, user: User) -> None:
    """Delete the user with their inbox; audit entries keep the row but lose the actor link."""
    reason = deletion_blocker(actor, user)
    if reason:
        raise ValidationFailed(reason)

    user_id, role = user.id, user.role
    with atomic("delete_account", user_id=user_id):
        Notification.query.filter_by(user_id=user_id).delete(synchronize_session="fetch")
        ComplaintActivity.query.filter_by(user_id=user_id).update(
            {ComplaintActivity.user_id: None}, synchronize_session="fetch"
        )
        user.departments = []
        db.session.delete(user)

    current_app.logger.info("account_deleted", extra={"user_id": user_id, "role": role})
