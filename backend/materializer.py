"""
Clone-mode instance materialization for recurring tasks and calendar events.

One InstanceMaterializer walks a template's recurrence forward through the
lookahead window; the entity adapters supply the per-model field mapping.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from backend.errors import TemplateNotFound
from backend.recurrence import anchor_key, compute_next_occurrence
from models import db, CalendarEvent, Task

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 30
INITIAL_TASK_STATUS = 'not_started'

KIND_TASK = 'task'
KIND_EVENT = 'event'


@dataclass
class MaterializeResult:
    template_id: int
    created: int = 0
    skipped: int = 0
    reason: Optional[str] = None


class EntityAdapter:
    """Model-specific hooks the materializer needs. Subclasses set ``model``."""

    kind = None
    model = None
    anchor_field = None

    def load_template(self, template_id):
        return db.session.get(self.model, template_id)

    def anchor_of(self, record):
        return getattr(record, self.anchor_field)

    def _instance_anchor_column(self):
        return getattr(self.model, self.anchor_field)

    def load_existing_instance_anchors(self, template_id) -> Set[str]:
        rows = db.session.query(self._instance_anchor_column()).filter(
            self.model.parent_id == template_id
        ).all()
        return {anchor_key(row[0]) for row in rows if row[0] is not None}

    def count_existing_instances(self, template_id) -> int:
        return self.model.query.filter(self.model.parent_id == template_id).count()

    def build_instance(self, template, occurrence):
        raise NotImplementedError

    def set_anchor(self, record, occurrence):
        setattr(record, self.anchor_field, occurrence)

    def is_open(self, record):
        return True

    def reset_for_next_occurrence(self, record):
        record.reminder_sent = False

    def persist_batch(self, records):
        try:
            db.session.add_all(records)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise


class TaskAdapter(EntityAdapter):
    kind = KIND_TASK
    model = Task
    anchor_field = 'due_date'

    def build_instance(self, template, occurrence):
        return Task(
            user_id=template.user_id,
            title=template.title,
            description=template.description,
            status=INITIAL_TASK_STATUS,
            priority=template.priority,
            due_date=occurrence,
            project=template.project,
            labels=template.labels,
            archived=False,
            reminder_sent=False,
            is_recurring=False,
            parent_id=template.id,
        )

    def is_open(self, record):
        return (record.status or INITIAL_TASK_STATUS) in {'not_started', 'in_progress'}

    def reset_for_next_occurrence(self, record):
        record.status = INITIAL_TASK_STATUS
        record.completion_date = None
        record.reminder_sent = False


class EventAdapter(EntityAdapter):
    kind = KIND_EVENT
    model = CalendarEvent
    anchor_field = 'start_time'

    def build_instance(self, template, occurrence):
        duration = template.duration() or timedelta(0)
        return CalendarEvent(
            user_id=template.user_id,
            title=template.title,
            description=template.description,
            start_time=occurrence,
            end_time=occurrence + duration,
            color=template.color,
            project=template.project,
            source=template.source or 'app',
            reminder_sent=False,
            is_recurring=False,
            parent_id=template.id,
        )

    def set_anchor(self, record, occurrence):
        duration = record.duration() or timedelta(0)
        record.start_time = occurrence
        record.end_time = occurrence + duration


ADAPTERS = {
    KIND_TASK: TaskAdapter(),
    KIND_EVENT: EventAdapter(),
}


def get_adapter(kind) -> EntityAdapter:
    try:
        return ADAPTERS[kind]
    except KeyError:
        raise ValueError(f"Unknown recurring entity kind: {kind}") from None


class InstanceMaterializer:
    def __init__(self, adapter: EntityAdapter, clock=None):
        self.adapter = adapter
        self.clock = clock or datetime.now

    def plan(self, template, existing_keys, existing_count, lookahead_days=DEFAULT_LOOKAHEAD_DAYS):
        """Stage new instance records without touching the session."""
        config = template.recurrence_config()
        now = self.clock()
        window_end = now + timedelta(days=lookahead_days)
        cursor = self.adapter.anchor_of(template)
        if cursor is None:
            return [], 0
        produced = existing_count if config.count else 0

        staged: List = []
        skipped = 0
        while cursor < window_end:
            next_occurrence = compute_next_occurrence(cursor, config)
            if next_occurrence is None or next_occurrence >= window_end:
                break
            if config.count and produced >= config.count:
                break
            if anchor_key(next_occurrence) in existing_keys:
                skipped += 1
            else:
                staged.append(self.adapter.build_instance(template, next_occurrence))
                produced += 1
            cursor = next_occurrence
        return staged, skipped

    def materialize_future_instances(self, template_id, lookahead_days=DEFAULT_LOOKAHEAD_DAYS) -> MaterializeResult:
        template = self.adapter.load_template(template_id)
        if template is None:
            raise TemplateNotFound(self.adapter.kind, template_id)
        result = MaterializeResult(template_id=template_id)
        if not template.is_recurring or template.recurrence_mode != 'clone':
            result.reason = 'not_clone_template'
            return result
        if self.adapter.anchor_of(template) is None:
            logger.warning("Recurring %s template %s has no anchor, skipping", self.adapter.kind, template_id)
            result.reason = 'no_anchor'
            return result

        existing_keys = self.adapter.load_existing_instance_anchors(template_id)
        existing_count = self.adapter.count_existing_instances(template_id) if template.recurrence_count else 0
        staged, skipped = self.plan(template, existing_keys, existing_count, lookahead_days)
        result.skipped = skipped
        if staged:
            self.adapter.persist_batch(staged)
            result.created = len(staged)
            logger.info(
                "Created %s recurring %s instances for template %s",
                result.created, self.adapter.kind, template_id,
            )
        return result


def materialize_future_instances(kind, template_id, lookahead_days=None, clock=None) -> MaterializeResult:
    lookahead = DEFAULT_LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days
    return InstanceMaterializer(get_adapter(kind), clock=clock).materialize_future_instances(template_id, lookahead)


def materialize_task_instances(task_id, lookahead_days=None, clock=None) -> MaterializeResult:
    return materialize_future_instances(KIND_TASK, task_id, lookahead_days, clock)


def materialize_event_instances(event_id, lookahead_days=None, clock=None) -> MaterializeResult:
    return materialize_future_instances(KIND_EVENT, event_id, lookahead_days, clock)
