"""Exception types raised by bioseq."""

from contextlib import contextmanager


class BioseqError(Exception):
    """Base exception type"""


class TransactionError(BioseqError, RuntimeError):
    """
    ``end_update`` was called more times than ``begin_update``
    """


class IncompatiblePlaneError(BioseqError, ValueError):
    """
    A plane does not match the X/Y/C/type structure of the sequence it is written to
    """


class SequenceRequiredError(BioseqError, ValueError):
    """
    An operation was called without the sequence it needs
    """


class OperationCancelled(BioseqError):
    """
    A long running operation stopped because its cancel flag was set.

    ``last_index`` is the index of the last plane that was fully processed
    (``-1`` if none was), so the caller can decide to resume or roll back.
    """

    def __init__(self, last_index: int, message: str = ""):
        self.last_index = last_index
        super().__init__(message or f"Operation cancelled after plane {last_index}")


class OperationFailed(BioseqError):
    """
    A long running operation stopped because processing a plane raised.

    ``last_index`` has the same meaning as for :class:`OperationCancelled`, the
    original error is chained as ``__cause__``.
    """

    def __init__(self, last_index: int, message: str = ""):
        self.last_index = last_index
        super().__init__(message or f"Operation failed after plane {last_index}")


@contextmanager
def processing_plane(index: int):
    """Turn an error raised while processing plane ``index`` into OperationFailed"""
    try:
        yield
    except (OperationCancelled, OperationFailed):
        raise
    except Exception as e:
        raise OperationFailed(index - 1, f"Failed at plane {index}: {e}") from e
