"""Shared create/edit/delete rules for recurring templates and their instances."""
from flask import current_app

from backend.errors import AnchorLocked, RecurrenceModeLocked
from backend.materializer import DEFAULT_LOOKAHEAD_DAYS, get_adapter, materialize_future_instances
from backend.propagation import RECURRENCE_DEFINITION_FIELDS, propagate_template_edit
from models import db
from services.validation_service import parse_recurrence_payload


def configured_lookahead_days():
    return int(current_app.config.get('RECURRENCE_LOOKAHEAD_DAYS', DEFAULT_LOOKAHEAD_DAYS))


def init_template(record, data):
    """Stamp recurrence columns onto a new template record."""
    fields = parse_recurrence_payload(data)
    for name, value in fields.items():
        setattr(record, name, value)
    record.is_recurring = True
    record.parent_id = None
    record.recurrence_mode = record.recurrence_mode or 'clone'
    return record


def after_template_created(kind, record):
    if record.recurrence_mode == 'clone':
        return materialize_future_instances(kind, record.id, configured_lookahead_days())
    return None


def check_template_edit(kind, record, fields, recurrence_data):
    """Reject edits that would change a template's mode or move a clone-mode anchor."""
    new_mode = recurrence_data.get('recurrence_mode')
    if new_mode is not None and new_mode != record.recurrence_mode:
        raise RecurrenceModeLocked(
            f"recurrence_mode of {kind} {record.id} is '{record.recurrence_mode}' and cannot be changed"
        )
    if record.recurrence_mode == 'clone':
        anchor_field = get_adapter(kind).anchor_field
        if anchor_field in fields and fields[anchor_field] != getattr(record, anchor_field):
            raise AnchorLocked(f"{anchor_field} of clone-mode {kind} {record.id} cannot be moved")


def recurrence_fields_for_edit(record, data):
    if not record.is_template():
        return {}
    if not any(name in data for name in RECURRENCE_DEFINITION_FIELDS):
        return {}
    return parse_recurrence_payload(data, existing=record)


def apply_edit(kind, record, fields, recurrence_fields=None):
    """
    Write ``fields`` to ``record``; for templates, push the descriptive part to
    every instance and top up clone-mode instances. Returns the changed fields.
    """
    recurrence_fields = recurrence_fields or {}
    if record.is_template():
        check_template_edit(kind, record, fields, recurrence_fields)

    changed = {}
    for name, value in fields.items():
        if getattr(record, name) != value:
            setattr(record, name, value)
            changed[name] = value
    for name, value in recurrence_fields.items():
        if name == 'recurrence_mode':
            continue
        if getattr(record, name) != value:
            setattr(record, name, value)
            changed[name] = value
    db.session.commit()

    if record.is_template():
        propagate_template_edit(kind, record.id, changed)
        if record.recurrence_mode == 'clone':
            materialize_future_instances(kind, record.id, configured_lookahead_days())
    return changed


def delete_series(kind, record):
    """Delete a template together with every instance materialized from it."""
    model = get_adapter(kind).model
    removed = model.query.filter(model.parent_id == record.id).delete(synchronize_session=False)
    db.session.delete(record)
    db.session.commit()
    if removed:
        current_app.logger.info(f"Deleted {kind} template {record.id} and {removed} instances")
    return removed + 1
