"""Exceptions raised by the queue and drop services."""


class QueueError(Exception):
    """Base class for queue / drop service errors."""


class ValidationError(QueueError, ValueError):
    """Bad input, rejected before any state change."""


class NotFoundError(QueueError, LookupError):
    """The queue, item or slot no longer exists."""


class PartialWriteError(QueueError):
    """A multi-step mutation failed after an earlier step was persisted.

    The affected session or queue is resynchronized from the store before
    the next operation on it.
    """
