"""Error taxonomy shared by the store, reconcilers and controllers."""


class ImagewrightError(Exception):
    """Base class for all imagewright errors."""


class NetworkError(ImagewrightError):
    """Transient infrastructure failure (API server or registry unavailable)."""


class NotReadyError(ImagewrightError):
    """A referenced dependency exists but has not reached a ready condition."""


class ConflictError(ImagewrightError):
    """Optimistic concurrency rejection: the write was based on a stale copy."""


class NotFoundError(ImagewrightError):
    """The requested resource does not exist."""

    def __init__(self, kind, name, namespace=None):
        self.kind = kind
        self.name = name
        self.namespace = namespace
        location = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} '{location}' not found")


class InvalidSpecError(ImagewrightError):
    """The spec can never be reconciled as written; only an edit fixes it."""


class ReconcileCancelled(ImagewrightError):
    """The reconcile deadline passed or the controller is shutting down."""


class PermanentError(ImagewrightError):
    """A failure that retrying cannot fix.

    The original error is kept as ``__cause__`` and as ``self.error``; the
    message is the original message so status conditions read naturally.
    """

    def __init__(self, error):
        self.error = error
        super().__init__(str(error))


RETRYABLE_ERRORS = (NetworkError, NotReadyError, ConflictError, ReconcileCancelled)


def error_chain(error):
    """Yield ``error`` and every exception it was raised from or during."""
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        yield error
        error = error.__cause__ or error.__context__


def find_in_chain(error, error_types):
    """Return the first exception in the chain matching ``error_types``."""
    for link in error_chain(error):
        if isinstance(link, error_types):
            return link
    return None


def is_retryable(error):
    """Whether the outer work queue should retry ``error`` with backoff."""
    if isinstance(error, PermanentError):
        return False
    return find_in_chain(error, RETRYABLE_ERRORS) is not None
