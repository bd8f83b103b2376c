from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import declared_attr
from datetime import datetime

db = SQLAlchemy()

WEEKDAY_NAMES = ['sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday']
RECURRENCE_PATTERNS = {'daily', 'weekly', 'monthly', 'yearly'}
RECURRENCE_MODES = {'clone', 'refresh'}


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    tasks = db.relationship('Task', backref='owner', lazy=True, cascade="all, delete-orphan")
    events = db.relationship('CalendarEvent', backref='owner', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'created_at': _iso(self.created_at),
        }


class RecurrenceMixin:
    """
    Recurrence columns shared by tasks and calendar events.

    A template has is_recurring=True and parent_id=None; an instance has
    is_recurring=False and parent_id pointing at its template.
    """
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurrence_pattern = db.Column(db.String(20), nullable=True)  # daily | weekly | monthly | yearly
    recurrence_days = db.Column(db.String(100), nullable=True)  # comma separated weekday names
    recurrence_end_date = db.Column(db.DateTime, nullable=True)
    recurrence_count = db.Column(db.Integer, nullable=True)
    recurrence_mode = db.Column(db.String(10), nullable=True)  # clone | refresh, templates only

    @declared_attr
    def parent_id(cls):
        return db.Column(db.Integer, db.ForeignKey(f'{cls.__tablename__}.id'), nullable=True, index=True)

    def is_template(self):
        return bool(self.is_recurring) and self.parent_id is None

    def is_instance(self):
        return self.parent_id is not None

    def recurrence_day_list(self):
        if not self.recurrence_days:
            return []
        return [d.strip().lower() for d in self.recurrence_days.split(',') if d.strip()]

    def recurrence_config(self):
        from backend.recurrence import RecurrenceConfig
        return RecurrenceConfig(
            pattern=self.recurrence_pattern,
            days=self.recurrence_day_list(),
            end_date=self.recurrence_end_date,
            count=self.recurrence_count,
        )

    def recurrence_dict(self):
        return {
            'is_recurring': bool(self.is_recurring),
            'recurrence_pattern': self.recurrence_pattern,
            'recurrence_days': self.recurrence_day_list(),
            'recurrence_end_date': _iso(self.recurrence_end_date),
            'recurrence_count': self.recurrence_count,
            'recurrence_mode': self.recurrence_mode,
            'parent_id': self.parent_id,
        }


class Task(RecurrenceMixin, db.Model):
    __tablename__ = 'task'
    __table_args__ = (
        db.UniqueConstraint('parent_id', 'due_date', name='uq_task_parent_due_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), default='not_started')  # not_started | in_progress | done
    priority = db.Column(db.String(10), default='medium')  # low | medium | high
    due_date = db.Column(db.DateTime, nullable=True)
    project = db.Column(db.String(100), nullable=True)
    labels = db.Column(db.String(300), nullable=True)  # comma separated
    archived = db.Column(db.Boolean, default=False)
    completion_date = db.Column(db.DateTime, nullable=True)
    reminder_at = db.Column(db.DateTime, nullable=True)
    reminder_sent = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def label_list(self):
        if not self.labels:
            return []
        return [t.strip() for t in self.labels.split(',') if t.strip()]

    def to_dict(self):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'due_date': _iso(self.due_date),
            'project': self.project,
            'labels': self.label_list(),
            'archived': bool(self.archived),
            'completion_date': _iso(self.completion_date),
            'reminder_at': _iso(self.reminder_at),
            'reminder_sent': bool(self.reminder_sent),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        data.update(self.recurrence_dict())
        return data


class CalendarEvent(RecurrenceMixin, db.Model):
    """
    Timed calendar entry. start_time is the recurring anchor; end_time keeps
    its distance from start_time on every materialized instance.
    All datetimes are stored naive in server local time.
    """
    __tablename__ = 'calendar_event'
    __table_args__ = (
        db.UniqueConstraint('parent_id', 'start_time', name='uq_event_parent_start_time'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    color = db.Column(db.String(20), nullable=True)
    project = db.Column(db.String(100), nullable=True)
    source = db.Column(db.String(20), default='app')
    reminder_at = db.Column(db.DateTime, nullable=True)
    reminder_sent = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def duration(self):
        if not self.start_time or not self.end_time:
            return None
        return self.end_time - self.start_time

    def to_dict(self):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'description': self.description,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'color': self.color,
            'project': self.project,
            'source': self.source,
            'reminder_at': _iso(self.reminder_at),
            'reminder_sent': bool(self.reminder_sent),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        data.update(self.recurrence_dict())
        return data


class JobLock(db.Model):
    """Single-row lock per background job so only one worker runs it at a time."""
    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(50), unique=True, nullable=False)
    locked_at = db.Column(db.DateTime, nullable=False)
    locked_by = db.Column(db.String(50), nullable=True)
