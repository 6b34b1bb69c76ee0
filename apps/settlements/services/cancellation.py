import threading

from .exceptions import RecalculationCancelledError


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a recompute.

    The engine checks the token between reads and writes; once cancelled,
    the running recompute raises RecalculationCancelledError and its
    transaction rolls back.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise RecalculationCancelledError("Settlement recalculation was cancelled")
