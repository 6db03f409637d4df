"""Retry classification around any reconciler."""

import logging

from imagewright.errors import PermanentError, is_retryable

logger = logging.getLogger(__name__)


class NetworkErrorReconciler:
    """Passes retryable errors through; everything else becomes permanent.

    Retryable means a network, not-ready, conflict or cancellation error
    anywhere in the raised exception's cause chain.
    """

    def __init__(self, reconciler):
        self.reconciler = reconciler

    def reconcile(self, key, ctx=None):
        try:
            return self.reconciler.reconcile(key, ctx)
        except PermanentError:
            raise
        except Exception as e:
            if is_retryable(e):
                raise
            logger.debug(f"Permanent failure reconciling {key}: {e}")
            raise PermanentError(e) from e
