"""Unit-of-work helper: every multi-row write commits together or not at all."""
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from utils.errors import Conflict, InternalError


@contextmanager
def atomic(operation: str, **context):
    """Commit the session after the block; roll back on any failure.

    Unique-constraint violations surface as Conflict, other store failures as
    InternalError. Domain errors raised inside the block propagate unchanged.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Integrity violation during %s", operation, extra={"operation": operation, **context}
        )
        raise Conflict("The change conflicts with an existing record") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Database error during %s", operation, extra={"operation": operation, **context}
        )
        raise InternalError(f"Failed to {operation.replace('_', ' ')}") from exc
    except Exception:
        db.session.rollback()
        raise
