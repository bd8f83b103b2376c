from datetime import datetime, timedelta

from backend.materializer import materialize_event_instances, materialize_task_instances
from backend.propagation import propagatable_fields, propagate_template_edit
from models import db, CalendarEvent, Task
from services import task_service


def _materialized_task_template(make_task, clock, days=5):
    template = make_task(priority='low', project='Home')
    materialize_task_instances(template.id, lookahead_days=days, clock=clock)
    return template


def test_descriptive_edit_reaches_every_instance(make_task, clock):
    template = _materialized_task_template(make_task, clock)

    updated = propagate_template_edit('task', template.id, {'title': 'Water all plants', 'priority': 'high'})

    assert updated == 4
    for instance in Task.query.filter_by(parent_id=template.id):
        assert instance.title == 'Water all plants'
        assert instance.priority == 'high'


def test_recurrence_definition_never_reaches_instances(make_task, clock):
    template = _materialized_task_template(make_task, clock)

    updated = propagate_template_edit('task', template.id, {
        'recurrence_pattern': 'weekly',
        'recurrence_count': 3,
        'is_recurring': True,
        'parent_id': None,
    })

    assert updated == 0
    for instance in Task.query.filter_by(parent_id=template.id):
        assert instance.recurrence_pattern is None
        assert instance.recurrence_count is None
        assert instance.is_recurring is False
        assert instance.parent_id == template.id


def test_instance_owned_state_is_kept(make_task, clock):
    template = _materialized_task_template(make_task, clock)
    first = Task.query.filter_by(parent_id=template.id).order_by(Task.due_date).first()
    first.status = 'done'
    first.completion_date = datetime(2024, 1, 11, 10, 0)
    db.session.commit()

    propagate_template_edit('task', template.id, {
        'status': 'in_progress',
        'due_date': datetime(2024, 3, 1),
        'description': 'Use rain water',
    })

    db.session.expire_all()
    first = db.session.get(Task, first.id)
    assert first.status == 'done'
    assert first.completion_date == datetime(2024, 1, 11, 10, 0)
    assert first.due_date == datetime(2024, 1, 11, 9, 0)
    assert first.description == 'Use rain water'


def test_event_edit_keeps_instance_times(make_event, clock):
    template = make_event()
    materialize_event_instances(template.id, clock=clock)
    before = {ev.id: (ev.start_time, ev.end_time) for ev in CalendarEvent.query.filter_by(parent_id=template.id)}

    propagate_template_edit('event', template.id, {'color': '#ff0000', 'start_time': datetime(2024, 6, 1, 9, 0)})

    db.session.expire_all()
    for ev in CalendarEvent.query.filter_by(parent_id=template.id):
        assert ev.color == '#ff0000'
        assert (ev.start_time, ev.end_time) == before[ev.id]


def test_propagatable_fields_filters_unknown_columns():
    assert propagatable_fields(Task, {'title': 'x', 'color': 'red', 'status': 'done'}) == {'title': 'x'}
    assert propagatable_fields(CalendarEvent, {'color': 'red', 'end_time': None}) == {'color': 'red'}
    assert propagatable_fields(Task, None) == {}


def test_instance_edit_stays_local(app, user):
    due = (datetime.now() + timedelta(days=1)).replace(microsecond=0)
    template = task_service.create_task(user.id, {
        'title': 'Stretch',
        'due_date': due.isoformat(),
        'is_recurring': True,
        'recurrence_pattern': 'daily',
    })
    siblings = task_service.list_tasks(user.id, parent_id=template.id)
    assert len(siblings) >= 2

    task_service.update_task(user.id, siblings[0].id, {'title': 'Long stretch', 'recurrence_pattern': 'weekly'})

    db.session.expire_all()
    assert db.session.get(Task, template.id).title == 'Stretch'
    assert db.session.get(Task, template.id).recurrence_pattern == 'daily'
    assert db.session.get(Task, siblings[0].id).title == 'Long stretch'
    assert db.session.get(Task, siblings[0].id).recurrence_pattern is None
    assert db.session.get(Task, siblings[1].id).title == 'Stretch'


def test_template_edit_through_service_updates_series(app, user):
    due = (datetime.now() + timedelta(days=1)).replace(microsecond=0)
    template = task_service.create_task(user.id, {
        'title': 'Stretch',
        'due_date': due.isoformat(),
        'is_recurring': True,
        'recurrence_pattern': 'daily',
        'labels': ['health'],
    })

    task_service.update_task(user.id, template.id, {'labels': 'health,morning', 'status': 'in_progress'})

    db.session.expire_all()
    instances = task_service.list_tasks(user.id, parent_id=template.id)
    assert instances
    assert all(t.label_list() == ['health', 'morning'] for t in instances)
    assert all(t.status == 'not_started' for t in instances)
