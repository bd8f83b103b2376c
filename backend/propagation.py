"""Copy descriptive edits from a recurring template onto its instances."""
import logging

from sqlalchemy.exc import SQLAlchemyError

from backend.materializer import get_adapter
from models import db

logger = logging.getLogger(__name__)

RECURRENCE_DEFINITION_FIELDS = frozenset({
    'is_recurring',
    'recurrence_pattern',
    'recurrence_days',
    'recurrence_end_date',
    'recurrence_count',
    'recurrence_mode',
    'parent_id',
})

# Each instance owns these; a template edit never overwrites them.
INSTANCE_OWNED_FIELDS = frozenset({
    'id',
    'user_id',
    'due_date',
    'start_time',
    'end_time',
    'status',
    'completion_date',
    'reminder_at',
    'reminder_sent',
    'created_at',
    'updated_at',
})


def propagatable_fields(model, changed_fields):
    """Filter an edit down to the descriptive columns that exist on ``model``."""
    columns = set(model.__table__.columns.keys())
    return {
        name: value
        for name, value in (changed_fields or {}).items()
        if name in columns
        and name not in RECURRENCE_DEFINITION_FIELDS
        and name not in INSTANCE_OWNED_FIELDS
    }


def propagate_template_edit(kind, template_id, changed_fields):
    """
    Apply the descriptive part of ``changed_fields`` to every instance of the
    template in one bulk UPDATE. Returns the number of instance rows updated.
    """
    adapter = get_adapter(kind)
    model = adapter.model
    updates = propagatable_fields(model, changed_fields)
    if not updates:
        return 0

    try:
        updated = model.query.filter(model.parent_id == template_id).update(
            updates, synchronize_session='fetch'
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    if updated:
        logger.info("Propagated %s to %s %s instances of template %s", sorted(updates), updated, kind, template_id)
    return updated
