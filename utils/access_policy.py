"""Role and ownership rules for complaints.

Every function here is pure: it only inspects the acting user and the complaint
row it is handed. Callers load the complaint themselves and turn a decision
into an error with :func:`enforce`.

Policy for missing versus forbidden complaints: a complaint that does not
exist, or has been soft-deleted, is NOT_FOUND for everyone. A complaint that
exists but is outside the caller's rights is DENY (403), whatever the
operation.
"""
import enum
from typing import Optional

from sqlalchemy import or_

from models import Complaint
from utils.errors import Forbidden, NotFound
from utils.identity import ActingUser

MUTABLE_FIELDS: frozenset[str] = frozenset({"status", "assigned_to_id", "department_id", "priority"})
STAFF_MUTABLE_FIELDS: frozenset[str] = frozenset({"status", "priority"})


class Decision(enum.Enum):
    ALLOW = "allow"
    DENY = "deny"
    NOT_FOUND = "not_found"


def _is_reporter(actor: ActingUser, complaint: Complaint) -> bool:
    return complaint.user_id == actor.id


def _is_assignee(actor: ActingUser, complaint: Complaint) -> bool:
    return complaint.assigned_to_id is not None and complaint.assigned_to_id == actor.id


def _in_department(actor: ActingUser, complaint: Complaint) -> bool:
    return complaint.department_id is not None and complaint.department_id in actor.department_ids


def can_see_internal(actor: ActingUser, complaint: Complaint) -> bool:
    """Internal comments belong to administrators and the assigned staff member."""
    if actor.is_admin:
        return True
    return actor.is_staff and _is_assignee(actor, complaint)


def can_view(actor: ActingUser, complaint: Complaint) -> bool:
    if actor.is_admin:
        return True
    if actor.is_staff:
        return _is_assignee(actor, complaint) or _in_department(actor, complaint)
    return _is_reporter(actor, complaint)


def can_comment(actor: ActingUser, complaint: Complaint, is_internal: bool = False) -> bool:
    """Whether the actor may post on the complaint.

    A USER asking for an internal comment is still allowed to comment; the
    flag itself is downgraded by the comment service.
    """
    if actor.is_admin:
        return True
    if actor.is_staff:
        return _is_assignee(actor, complaint)
    return _is_reporter(actor, complaint)


def can_mutate(actor: ActingUser, complaint: Complaint, field: str) -> bool:
    if field not in MUTABLE_FIELDS:
        return False
    if actor.is_admin:
        return True
    if actor.is_staff:
        return field in STAFF_MUTABLE_FIELDS and _is_assignee(actor, complaint)
    return False


def can_delete(actor: ActingUser, complaint: Complaint) -> bool:
    return actor.is_admin


def decide(actor: ActingUser, complaint: Optional[Complaint], allowed) -> Decision:
    """Tri-state decision; ``allowed`` is one of the ``can_*`` predicates bound to its extra args."""
    if complaint is None or complaint.is_deleted:
        return Decision.NOT_FOUND
    return Decision.ALLOW if allowed(actor, complaint) else Decision.DENY


def enforce(actor: ActingUser, complaint: Optional[Complaint], allowed, message: str = "Forbidden") -> Complaint:
    decision = decide(actor, complaint, allowed)
    if decision is Decision.NOT_FOUND:
        raise NotFound("Complaint not found")
    if decision is Decision.DENY:
        raise Forbidden(message)
    return complaint


def visible_complaints(actor: ActingUser):
    """Listing query restricted to what ``can_view`` would allow."""
    query = Complaint.active_query()
    if actor.is_admin:
        return query
    if actor.is_staff:
        conditions = [Complaint.assigned_to_id == actor.id]
        if actor.department_ids:
            conditions.append(Complaint.department_id.in_(sorted(actor.department_ids)))
        return query.filter(or_(*conditions))
    return query.filter(Complaint.user_id == actor.id)
