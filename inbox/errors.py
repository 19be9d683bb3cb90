class InboxError(Exception):
    pass


class InboxValidationError(InboxError):
    """Request is malformed; rejected before any mutation."""


class ItemNotFoundError(InboxError):
    pass


class InvalidStateTransitionError(InboxError):
    pass


class NoTransactionsFoundError(InboxError):
    """The text was processed fine but contained no transaction."""


class SourceNotConfiguredError(InboxError):
    pass


class RemoteSourceError(InboxError):
    """The message source itself failed before any message could be processed."""


class PersistenceError(InboxError):
    pass
