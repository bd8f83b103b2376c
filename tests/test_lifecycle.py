from datetime import datetime

from backend.lifecycle import LifecycleController
from backend.materializer import EventAdapter, MaterializeResult, TaskAdapter
from backend.recurrence_runner import process_all_recurring
from models import db, CalendarEvent, Task


def _overdue_refresh_task(make_task, **overrides):
    fields = {
        'recurrence_mode': 'refresh',
        'due_date': datetime(2024, 1, 5, 9, 0),
        'status': 'in_progress',
        'reminder_sent': True,
    }
    fields.update(overrides)
    return make_task(**fields)


def test_roll_forward_advances_one_period_and_resets(make_task, clock):
    task = _overdue_refresh_task(make_task, completion_date=datetime(2024, 1, 4, 12, 0))
    result = LifecycleController(TaskAdapter(), clock=clock).roll_forward(task)

    assert result.advanced
    assert result.new_anchor == datetime(2024, 1, 6, 9, 0)
    refreshed = db.session.get(Task, task.id)
    assert refreshed.due_date == datetime(2024, 1, 6, 9, 0)
    assert refreshed.status == 'not_started'
    assert refreshed.completion_date is None
    assert refreshed.reminder_sent is False


def test_each_sweep_advances_exactly_one_occurrence(make_task, clock):
    task_id = _overdue_refresh_task(make_task).id

    for expected_day in (6, 7, 8):
        report = process_all_recurring(clock=clock)
        assert report.advanced['task'] == 1
        task = db.session.get(Task, task_id)
        assert task.due_date == datetime(2024, 1, expected_day, 9, 0)
        assert task.status == 'not_started'
        # Simulate the reminder firing again before the next sweep.
        task.reminder_sent = True
        db.session.commit()

    assert Task.query.filter_by(parent_id=task_id).count() == 0


def test_due_earlier_today_is_not_overdue(make_task, clock):
    task = _overdue_refresh_task(make_task, due_date=datetime(2024, 1, 10, 7, 0))
    result = LifecycleController(TaskAdapter(), clock=clock).roll_forward(task)
    assert not result.advanced
    assert result.reason == 'not_overdue'


def test_completed_refresh_task_stays_put(make_task, clock):
    task = _overdue_refresh_task(make_task, status='done')
    result = LifecycleController(TaskAdapter(), clock=clock).roll_forward(task)
    assert result.reason == 'closed'
    assert db.session.get(Task, task.id).due_date == datetime(2024, 1, 5, 9, 0)


def test_ended_series_is_left_unchanged(make_task, clock):
    task = _overdue_refresh_task(make_task, recurrence_end_date=datetime(2024, 1, 5, 23, 59))
    result = LifecycleController(TaskAdapter(), clock=clock).roll_forward(task)
    assert result.reason == 'series_ended'
    unchanged = db.session.get(Task, task.id)
    assert unchanged.due_date == datetime(2024, 1, 5, 9, 0)
    assert unchanged.status == 'in_progress'


def test_refresh_event_shifts_end_time_with_start(make_event, clock):
    event = make_event(
        recurrence_mode='refresh',
        start_time=datetime(2024, 1, 8, 10, 0),
        end_time=datetime(2024, 1, 8, 11, 0),
        reminder_sent=True,
    )
    result = LifecycleController(EventAdapter(), clock=clock).roll_forward(event)

    assert result.advanced
    moved = db.session.get(CalendarEvent, event.id)
    assert moved.start_time == datetime(2024, 1, 15, 10, 0)
    assert moved.end_time == datetime(2024, 1, 15, 11, 0)
    assert moved.reminder_sent is False


def test_process_template_dispatches_on_mode(make_task, clock):
    controller = LifecycleController(TaskAdapter(), clock=clock)
    clone = make_task()
    refresh = _overdue_refresh_task(make_task)

    clone_outcome = controller.process_template(clone, lookahead_days=3)
    refresh_outcome = controller.process_template(refresh)

    assert isinstance(clone_outcome, MaterializeResult)
    assert clone_outcome.created == 2
    assert refresh_outcome.advanced


def test_roll_forward_ignores_clone_templates(make_task, clock):
    clone = make_task(due_date=datetime(2024, 1, 1, 9, 0))
    result = LifecycleController(TaskAdapter(), clock=clock).roll_forward(clone)
    assert result.reason == 'not_refresh_template'
    assert db.session.get(Task, clone.id).due_date == datetime(2024, 1, 1, 9, 0)
