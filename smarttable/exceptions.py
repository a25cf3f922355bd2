"""Table engine error taxonomy."""


class TableError(Exception):
    """Base class for table engine errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FetchError(TableError):
    """A fetcher call failed. Stored on the orchestrator, never re-raised."""

    def __init__(self, message: str, signature: str = ""):
        self.signature = signature
        super().__init__(message)


class PersistenceError(TableError):
    """Column layout storage could not be read, parsed or written."""

    def __init__(self, message: str, key: str = ""):
        self.key = key
        super().__init__(message)


class CompositionError(TableError):
    """A query strategy does not know a sort field or filter key."""

    def __init__(self, message: str, field: str = ""):
        self.field = field
        super().__init__(message)


class ExportLimitError(TableError):
    """A full-dataset pull exceeded its page or row guard."""
