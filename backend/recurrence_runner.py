"""Periodic sweep over every recurring template, one owner at a time."""
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List

from flask import current_app
from sqlalchemy.exc import IntegrityError

from backend.lifecycle import LifecycleController, RollForwardResult
from backend.materializer import DEFAULT_LOOKAHEAD_DAYS, KIND_EVENT, KIND_TASK, get_adapter
from models import db, JobLock, User

SWEEP_LOCK_NAME = 'recurrence_sweep'
DEFAULT_LOCK_STALE_MINUTES = 5


@dataclass
class SweepReport:
    processed: Dict[str, int] = field(default_factory=lambda: {KIND_TASK: 0, KIND_EVENT: 0})
    created: Dict[str, int] = field(default_factory=lambda: {KIND_TASK: 0, KIND_EVENT: 0})
    advanced: Dict[str, int] = field(default_factory=lambda: {KIND_TASK: 0, KIND_EVENT: 0})
    failures: List[dict] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self):
        return not self.failures

    def to_dict(self):
        return {
            'processed': dict(self.processed),
            'created': dict(self.created),
            'advanced': dict(self.advanced),
            'failures': list(self.failures),
            'skipped': self.skipped,
        }


def _acquire_lock(lock_name, worker_id, now, stale_after):
    """Insert the lock row, or take over a stale one. Returns False if held elsewhere."""
    try:
        db.session.add(JobLock(job_name=lock_name, locked_at=now, locked_by=worker_id))
        db.session.commit()
        return True
    except IntegrityError:
        db.session.rollback()

    lock = JobLock.query.filter_by(job_name=lock_name).first()
    if lock is None:
        current_app.logger.info("Recurrence sweep lock acquisition failed (missing lock), skipping")
        return False
    if now - lock.locked_at < stale_after:
        current_app.logger.info(f"Recurrence sweep already running (locked by {lock.locked_by}), skipping")
        return False
    lock.locked_at = now
    lock.locked_by = worker_id
    db.session.commit()
    return True


def _release_lock(lock_name, worker_id):
    try:
        lock = JobLock.query.filter_by(job_name=lock_name).first()
        if lock and lock.locked_by == worker_id:
            db.session.delete(lock)
            db.session.commit()
    except Exception as e:
        current_app.logger.error(f"Error releasing recurrence sweep lock: {e}")
        db.session.rollback()


def _template_query(adapter, user_id):
    model = adapter.model
    query = model.query.filter(model.user_id == user_id, model.is_recurring.is_(True))
    if adapter.kind == KIND_EVENT:
        query = query.filter(model.parent_id.is_(None))
    return query.order_by(model.id.asc())


def sweep_kind(kind, report, clock=None, lookahead_days=DEFAULT_LOOKAHEAD_DAYS, user_id=None):
    """Process every template of one entity kind; failures are logged per template."""
    adapter = get_adapter(kind)
    controller = LifecycleController(adapter, clock=clock)
    if user_id is not None:
        user_ids = [user_id]
    else:
        user_ids = [u.id for u in User.query.order_by(User.id.asc()).all()]
    for uid in user_ids:
        template_ids = [t.id for t in _template_query(adapter, uid).all()]
        for template_id in template_ids:
            try:
                template = adapter.load_template(template_id)
                if template is None:
                    continue
                outcome = controller.process_template(template, lookahead_days)
            except Exception as e:
                db.session.rollback()
                current_app.logger.error(f"Error processing recurring {kind} {template_id}: {e}")
                report.failures.append({'kind': kind, 'template_id': template_id, 'error': str(e)})
                continue
            report.processed[kind] += 1
            if isinstance(outcome, RollForwardResult):
                report.advanced[kind] += int(outcome.advanced)
            else:
                report.created[kind] += outcome.created
    return report


def process_all_recurring(clock=None, lookahead_days=None, lock_stale_minutes=None, user_id=None):
    """
    Sweep recurring tasks, then recurring events. Must run inside an app context.
    With ``user_id`` only that owner's templates are processed.

    Returns a SweepReport; a run that finds the sweep lock held by another
    worker is reported as skipped.
    """
    clock = clock or datetime.now
    config = current_app.config
    if lookahead_days is None:
        lookahead_days = int(config.get('RECURRENCE_LOOKAHEAD_DAYS', DEFAULT_LOOKAHEAD_DAYS))
    if lock_stale_minutes is None:
        lock_stale_minutes = int(config.get('RECURRENCE_LOCK_STALE_MINUTES', DEFAULT_LOCK_STALE_MINUTES))

    report = SweepReport()
    worker_id = str(os.getpid())
    if not _acquire_lock(SWEEP_LOCK_NAME, worker_id, clock(), timedelta(minutes=lock_stale_minutes)):
        report.skipped = True
        return report

    try:
        for kind in (KIND_TASK, KIND_EVENT):
            sweep_kind(kind, report, clock=clock, lookahead_days=lookahead_days, user_id=user_id)
    finally:
        _release_lock(SWEEP_LOCK_NAME, worker_id)

    current_app.logger.info(
        f"Recurrence sweep: processed {report.processed}, created {report.created}, "
        f"advanced {report.advanced}, failed {len(report.failures)}"
    )
    return report
