"""Error types raised by the recurrence engine and its service layer."""


class RecurrenceError(Exception):
    """Base class for recurrence failures that callers are expected to handle."""


class TemplateNotFound(RecurrenceError):
    def __init__(self, kind, template_id):
        super().__init__(f"{kind} {template_id} not found")
        self.kind = kind
        self.template_id = template_id


class RecurrenceModeLocked(RecurrenceError):
    """recurrence_mode is fixed once a template exists."""


class AnchorLocked(RecurrenceError):
    """A clone-mode template keeps the anchor it was created with."""


class InvalidRecurrenceConfig(RecurrenceError):
    pass
