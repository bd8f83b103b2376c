"""Task CRUD with recurring template support."""
from datetime import datetime

from backend.errors import InvalidRecurrenceConfig
from backend.materializer import KIND_TASK
from models import db, Task
from services.recurring_service import (
    after_template_created,
    apply_edit,
    delete_series,
    init_template,
    recurrence_fields_for_edit,
)
from services.validation_service import (
    ALLOWED_PRIORITIES,
    ALLOWED_STATUSES,
    labels_to_string,
    parse_bool,
    parse_datetime_value,
)


def _task_fields(data, partial=False):
    """Map a request payload onto Task columns. Unknown keys are ignored."""
    fields = {}
    if 'title' in data or not partial:
        title = (data.get('title') or '').strip()
        if not title:
            raise ValueError('Title is required')
        fields['title'] = title
    if 'description' in data:
        fields['description'] = (data.get('description') or '').strip() or None
    if 'status' in data or not partial:
        status = data.get('status') or 'not_started'
        fields['status'] = status if status in ALLOWED_STATUSES else 'not_started'
    if 'priority' in data or not partial:
        priority = (data.get('priority') or 'medium').lower()
        fields['priority'] = priority if priority in ALLOWED_PRIORITIES else 'medium'
    if 'due_date' in data:
        raw = data.get('due_date')
        due_date = parse_datetime_value(raw)
        if raw and due_date is None:
            raise ValueError('Invalid due_date')
        fields['due_date'] = due_date
    if 'project' in data:
        fields['project'] = (data.get('project') or '').strip() or None
    if 'labels' in data:
        fields['labels'] = labels_to_string(data.get('labels'))
    if 'archived' in data:
        fields['archived'] = parse_bool(data.get('archived'))
    if 'reminder_at' in data:
        fields['reminder_at'] = parse_datetime_value(data.get('reminder_at'))
    if 'reminder_sent' in data:
        fields['reminder_sent'] = parse_bool(data.get('reminder_sent'))
    return fields


def _sync_completion(task, fields):
    if 'status' not in fields:
        return fields
    if fields['status'] == 'done' and task.status != 'done':
        fields['completion_date'] = datetime.now()
    elif fields['status'] != 'done' and task.completion_date is not None:
        fields['completion_date'] = None
    return fields


def list_tasks(user_id, parent_id=None, templates_only=False):
    """Templates and instances together, ordered by due date."""
    query = Task.query.filter(Task.user_id == user_id)
    if parent_id is not None:
        query = query.filter(Task.parent_id == parent_id)
    if templates_only:
        query = query.filter(Task.is_recurring.is_(True), Task.parent_id.is_(None))
    return query.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.id.asc()).all()


def get_task(user_id, task_id):
    return Task.query.filter_by(id=task_id, user_id=user_id).first()


def create_task(user_id, data):
    if parse_bool(data.get('is_recurring')):
        return create_recurring_task(user_id, data)
    task = Task(user_id=user_id, is_recurring=False, **_task_fields(data))
    if task.status == 'done':
        task.completion_date = datetime.now()
    db.session.add(task)
    db.session.commit()
    return task


def create_recurring_task(user_id, data):
    """Create a template; clone-mode templates get their first instances immediately."""
    task = Task(user_id=user_id, **_task_fields(data))
    init_template(task, data)
    if task.due_date is None:
        raise InvalidRecurrenceConfig('A recurring task needs a due_date')
    db.session.add(task)
    db.session.commit()
    after_template_created(KIND_TASK, task)
    return task


def update_task(user_id, task_id, data):
    task = get_task(user_id, task_id)
    if task is None:
        return None
    fields = _sync_completion(task, _task_fields(data, partial=True))
    recurrence_fields = recurrence_fields_for_edit(task, data)
    apply_edit(KIND_TASK, task, fields, recurrence_fields)
    return task


def delete_task(user_id, task_id):
    """Delete a task. Deleting a template also deletes its instances."""
    task = get_task(user_id, task_id)
    if task is None:
        return 0
    if task.is_template():
        return delete_series(KIND_TASK, task)
    db.session.delete(task)
    db.session.commit()
    return 1
