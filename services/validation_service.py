from datetime import date, datetime

from backend.errors import InvalidRecurrenceConfig
from backend.recurrence import RecurrenceConfig, normalize_recurrence_days, validate_recurrence_config
from models import RECURRENCE_MODES, WEEKDAY_NAMES

ALLOWED_PRIORITIES = {"low", "medium", "high"}
ALLOWED_STATUSES = {"not_started", "in_progress", "done"}


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_int(value, default=None):
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_labels(raw):
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    return [t.strip() for t in str(raw).split(",") if t.strip()]


def labels_to_string(labels):
    return ",".join(normalize_labels(labels)) or None


def parse_datetime_value(raw):
    """Accept datetimes, dates and ISO strings ('2024-05-01' or '2024-05-01T09:30[:00]')."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=None)
    if isinstance(raw, date):
        return datetime.combine(raw, datetime.min.time())
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except (TypeError, ValueError):
        return None


def parse_recurrence_payload(data, existing=None):
    """
    Build recurrence column values from a request payload.

    Only keys present in ``data`` are returned. Raises InvalidRecurrenceConfig
    when the resulting recurrence would be unusable.
    """
    fields = {}
    if "recurrence_pattern" in data:
        fields["recurrence_pattern"] = (data.get("recurrence_pattern") or "").strip().lower() or None
    if "recurrence_days" in data:
        raw_days = data.get("recurrence_days") or []
        if isinstance(raw_days, str):
            raw_days = raw_days.split(",")
        unknown = [d for d in raw_days if str(d).strip() and str(d).strip().lower() not in WEEKDAY_NAMES]
        if unknown:
            raise InvalidRecurrenceConfig(f"Unknown weekday name(s): {', '.join(str(d) for d in unknown)}")
        fields["recurrence_days"] = ",".join(normalize_recurrence_days(raw_days)) or None
    if "recurrence_end_date" in data:
        raw_end = data.get("recurrence_end_date")
        end_date = parse_datetime_value(raw_end)
        if raw_end and end_date is None:
            raise InvalidRecurrenceConfig("Invalid recurrence_end_date")
        fields["recurrence_end_date"] = end_date
    if "recurrence_count" in data:
        count = parse_int(data.get("recurrence_count"))
        if data.get("recurrence_count") not in (None, "") and (count is None or count < 1):
            raise InvalidRecurrenceConfig("recurrence_count must be a positive integer")
        fields["recurrence_count"] = count
    if "recurrence_mode" in data:
        mode = (data.get("recurrence_mode") or "clone").strip().lower()
        if mode not in RECURRENCE_MODES:
            raise InvalidRecurrenceConfig(f"Invalid recurrence_mode: {mode}")
        fields["recurrence_mode"] = mode

    pattern = fields.get("recurrence_pattern", getattr(existing, "recurrence_pattern", None))
    days = fields.get("recurrence_days", getattr(existing, "recurrence_days", None))
    config = RecurrenceConfig(
        pattern=pattern,
        days=(days or "").split(",") if days else [],
        count=fields.get("recurrence_count", getattr(existing, "recurrence_count", None)),
    )
    if not validate_recurrence_config(config):
        raise InvalidRecurrenceConfig(f"Invalid recurrence pattern: {pattern}")
    return fields
