"""Exceptions raised by record classes."""


class ActiveRecordError(Exception):
    """Base exception for record errors."""

    pass


class ConfigurationError(ActiveRecordError):
    """Raised when a record class is declared or wired incorrectly.

    Missing table name or primary key, no bound database, or a request for a
    relation the class does not declare.
    """

    pass


class PreconditionError(ActiveRecordError):
    """Raised when an operation is called on records in the wrong state.

    For example linking records whose primary keys are still null.
    """

    pass
