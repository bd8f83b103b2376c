"""Calendar event CRUD with recurring series support."""
from datetime import timedelta

from backend.materializer import KIND_EVENT
from models import db, CalendarEvent
from services.recurring_service import (
    after_template_created,
    apply_edit,
    delete_series,
    init_template,
    recurrence_fields_for_edit,
)
from services.validation_service import parse_bool, parse_datetime_value

DEFAULT_EVENT_LENGTH = timedelta(hours=1)
SERIES_MODES = {'this', 'all'}


def _event_fields(data, partial=False):
    fields = {}
    if 'title' in data or not partial:
        title = (data.get('title') or '').strip()
        if not title:
            raise ValueError('Title is required')
        fields['title'] = title
    if 'description' in data:
        fields['description'] = (data.get('description') or '').strip() or None
    for name in ('start_time', 'end_time'):
        if name in data or (name == 'start_time' and not partial):
            raw = data.get(name)
            value = parse_datetime_value(raw)
            if value is None and (raw or partial or name == 'start_time'):
                raise ValueError(f'Invalid {name}')
            fields[name] = value
    if 'color' in data:
        fields['color'] = (data.get('color') or '').strip() or None
    if 'project' in data:
        fields['project'] = (data.get('project') or '').strip() or None
    if 'source' in data:
        fields['source'] = (data.get('source') or 'app').strip()
    if 'reminder_at' in data:
        fields['reminder_at'] = parse_datetime_value(data.get('reminder_at'))
    if 'reminder_sent' in data:
        fields['reminder_sent'] = parse_bool(data.get('reminder_sent'))
    return fields


def _check_times(start_time, end_time):
    if start_time and end_time and end_time < start_time:
        raise ValueError('end_time must not be before start_time')


def list_events(user_id, start=None, end=None, parent_id=None):
    """Templates and instances together, optionally limited to a start_time range."""
    query = CalendarEvent.query.filter(CalendarEvent.user_id == user_id)
    if start is not None:
        query = query.filter(CalendarEvent.start_time >= start)
    if end is not None:
        query = query.filter(CalendarEvent.start_time <= end)
    if parent_id is not None:
        query = query.filter(CalendarEvent.parent_id == parent_id)
    return query.order_by(CalendarEvent.start_time.asc(), CalendarEvent.id.asc()).all()


def get_event(user_id, event_id):
    return CalendarEvent.query.filter_by(id=event_id, user_id=user_id).first()


def _new_event(user_id, data):
    fields = _event_fields(data)
    if fields.get('end_time') is None:
        fields['end_time'] = fields['start_time'] + DEFAULT_EVENT_LENGTH
    _check_times(fields['start_time'], fields['end_time'])
    return CalendarEvent(user_id=user_id, **fields)


def create_event(user_id, data):
    if parse_bool(data.get('is_recurring')):
        return create_recurring_event(user_id, data)
    event = _new_event(user_id, data)
    event.is_recurring = False
    db.session.add(event)
    db.session.commit()
    return event


def create_recurring_event(user_id, data):
    event = init_template(_new_event(user_id, data), data)
    db.session.add(event)
    db.session.commit()
    after_template_created(KIND_EVENT, event)
    return event


def update_event(user_id, event_id, data, update_mode='this'):
    """
    Edit an event. With update_mode='all' an instance edit is redirected to its
    template (minus the instance's own times), and from there to the series.
    Template edits always reach the series.
    """
    if update_mode not in SERIES_MODES:
        raise ValueError(f'Invalid update mode: {update_mode}')
    event = get_event(user_id, event_id)
    if event is None:
        return None

    target = event
    if update_mode == 'all' and event.is_instance():
        template = get_event(user_id, event.parent_id)
        if template is not None:
            target = template
            data = {k: v for k, v in data.items() if k not in ('start_time', 'end_time')}

    fields = _event_fields(data, partial=True)
    _check_times(fields.get('start_time', target.start_time), fields.get('end_time', target.end_time))
    recurrence_fields = recurrence_fields_for_edit(target, data)
    apply_edit(KIND_EVENT, target, fields, recurrence_fields)
    return event


def delete_event(user_id, event_id, delete_mode='this'):
    """
    Delete an event. Deleting a template, or an instance with delete_mode='all',
    removes the whole series.
    """
    if delete_mode not in SERIES_MODES:
        raise ValueError(f'Invalid delete mode: {delete_mode}')
    event = get_event(user_id, event_id)
    if event is None:
        return 0
    if event.is_instance() and delete_mode == 'all':
        template = get_event(user_id, event.parent_id)
        if template is not None:
            return delete_series(KIND_EVENT, template)
    if event.is_template():
        return delete_series(KIND_EVENT, event)
    db.session.delete(event)
    db.session.commit()
    return 1
