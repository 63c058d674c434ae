"""Aggregate complaint statistics for the role dashboards."""
from typing import Dict

from flask import current_app

from models import COMPLAINT_CATEGORIES, COMPLAINT_PRIORITIES, COMPLAINT_STATUSES, Complaint, count_by
from utils.access_policy import visible_complaints
from utils.identity import ActingUser
from utils.notifications import unread_count


def _zero_filled(keys, counts: Dict[str, int]) -> Dict[str, int]:
    return {key: int(counts.get(key, 0)) for key in keys}


def _average_resolution_hours(query) -> float | None:
    resolved = query.filter(Complaint.resolved_at.isnot(None)).with_entities(
        Complaint.created_at, Complaint.resolved_at
    )
    durations = [
        (resolved_at - created_at).total_seconds() / 3600.0
        for created_at, resolved_at in resolved
        if created_at and resolved_at and resolved_at >= created_at
    ]
    if not durations:
        return None
    return round(sum(durations) / len(durations), 2)


def dashboard_statistics(actor: ActingUser) -> Dict:
    """Counts over the complaints the actor can see, plus inbox state."""
    query = visible_complaints(actor)
    by_status = _zero_filled(COMPLAINT_STATUSES, count_by(Complaint.status, query))
    stats = {
        "total": sum(by_status.values()),
        "byStatus": by_status,
        "byCategory": _zero_filled(COMPLAINT_CATEGORIES, count_by(Complaint.category, query)),
        "byPriority": _zero_filled(COMPLAINT_PRIORITIES, count_by(Complaint.priority, query)),
        "averageResolutionHours": _average_resolution_hours(query),
        "unreadNotifications": unread_count(actor),
    }
    if actor.is_staff:
        stats["assignedToMe"] = query.filter(Complaint.assigned_to_id == actor.id).count()
    current_app.logger.info("dashboard_statistics_compiled", extra={"role": actor.role, "total": stats["total"]})
    return stats
