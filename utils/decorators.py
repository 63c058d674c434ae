"""Authorization decorators for role-based access control on JSON endpoints."""
from functools import wraps

from flask import current_app, request
from flask_login import current_user, login_required

from utils.errors import Forbidden


def roles_required(*roles):
    allowed = {r.upper() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            if (current_user.role or "").upper() in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized role access attempt",
                extra={"user_id": current_user.id, "role": current_user.role, "path": request.path},
            )
            raise Forbidden("You do not have permission to perform this action")

        return wrapped

    return decorator
