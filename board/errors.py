class BoardError(Exception):
    """Base class for message store errors."""


class InvalidInput(BoardError):
    """Message text is missing, not a string, or blank after trimming."""


class StoreUnavailable(BoardError):
    """The database could not be opened, queried or written."""
