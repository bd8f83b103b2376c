from datetime import datetime, timedelta

import background_jobs
from background_jobs import RecurrenceScheduler
from models import db, Task


def _commit_and_release():
    # tick() runs in its own app context and therefore its own session.
    db.session.commit()
    db.session.close()


def test_tick_runs_one_sweep(app, make_task, clock):
    template_id = make_task().id
    _commit_and_release()

    report = RecurrenceScheduler(app, clock=clock).tick()

    assert report is not None and report.ok
    assert report.created['task'] == 29
    assert Task.query.filter_by(parent_id=template_id).count() == 29


def test_repeated_ticks_roll_refresh_template_one_step_each(app, make_task, clock):
    template_id = make_task(recurrence_mode='refresh', due_date=datetime(2024, 1, 6, 9, 0)).id
    _commit_and_release()
    scheduler = RecurrenceScheduler(app, clock=clock)

    scheduler.tick()
    scheduler.tick()

    assert db.session.get(Task, template_id).due_date == datetime(2024, 1, 8, 9, 0)


def test_tick_logs_and_swallows_sweep_errors(app, monkeypatch):
    def boom(clock=None):
        raise RuntimeError('database unavailable')

    monkeypatch.setattr(background_jobs, 'process_all_recurring', boom)
    scheduler = RecurrenceScheduler(app)

    assert scheduler.tick() is None
    assert scheduler.last_report is None


def test_interval_comes_from_config(app):
    app.config['RECURRENCE_INTERVAL_MINUTES'] = 15
    assert RecurrenceScheduler(app).interval_minutes == 15
    assert RecurrenceScheduler(app, interval_minutes=5).interval_minutes == 5


def test_default_interval_is_hourly(app):
    app.config.pop('RECURRENCE_INTERVAL_MINUTES')
    assert RecurrenceScheduler(app).interval_minutes == 60


def test_start_registers_interval_job_and_stop_shuts_down(app, make_task, clock):
    make_task()
    _commit_and_release()
    scheduler = RecurrenceScheduler(app, interval_minutes=15, clock=clock)

    scheduler.start(run_now=True)
    try:
        assert scheduler.running
        assert scheduler.last_report is not None
        assert scheduler.last_report.created['task'] == 29
        job = scheduler.get_job()
        assert job is not None
        assert job.trigger.interval == timedelta(minutes=15)
        # A second start is a no-op.
        assert scheduler.start() is scheduler
    finally:
        scheduler.stop()

    assert not scheduler.running
    assert scheduler.get_job() is None


def test_start_without_immediate_run(app):
    scheduler = RecurrenceScheduler(app, interval_minutes=60)
    scheduler.start(run_now=False)
    try:
        assert scheduler.last_report is None
        assert scheduler.get_job().trigger.interval == timedelta(hours=1)
    finally:
        scheduler.stop()
