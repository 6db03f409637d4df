"""SourceResolver reconciler: pins a source and decides whether to keep polling."""

import logging

from imagewright.crd.base import CRDStatus
from imagewright.errors import PermanentError
from imagewright.models.source_resolver import SourceResolver

from .base import StatusReconciler

logger = logging.getLogger(__name__)


class PollingEnqueuer:
    """Re-enqueues a resolver after the polling delay."""

    def __init__(self, enqueue_after, delay):
        self.enqueue_after = enqueue_after
        self.delay = delay

    def enqueue(self, source_resolver):
        self.enqueue_after(source_resolver.key, self.delay)


class SourceResolverReconciler(StatusReconciler):
    resource_class = SourceResolver

    def __init__(self, store, resolvers, enqueuer):
        super().__init__(store)
        self.resolvers = list(resolvers)
        self.enqueuer = enqueuer

    def resolver_for(self, source_resolver):
        for resolver in self.resolvers:
            if resolver.can_resolve(source_resolver):
                return resolver
        return None

    def reconcile_resource(self, source_resolver, ctx):
        resolver = self.resolver_for(source_resolver)
        if resolver is None:
            raise PermanentError(ValueError("invalid source type"))

        try:
            resolved = resolver.resolve(source_resolver)
        except Exception as e:
            # Keep the last resolved source; only readiness reflects the failure.
            source_resolver.status.conditions = CRDStatus.ready_conditions(e)
            raise

        source_resolver.apply_resolved_source(resolved)
        if source_resolver.polling_ready():
            logger.debug(f"Polling {source_resolver.key} again in {self.enqueuer.delay}s")
            self.enqueuer.enqueue(source_resolver)
