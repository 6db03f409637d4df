"""Reconcilers for every imagewright resource kind."""

from .base import ReconcileContext, StatusReconciler
from .build import BuildReconciler
from .builder import BuilderReconciler, ClusterBuilderReconciler
from .image import ImageReconciler
from .network_error import NetworkErrorReconciler
from .remote import (
    ClusterBuildpackReconciler,
    ClusterLifecycleReconciler,
    ClusterStackReconciler,
    ClusterStoreReconciler,
    ExtensionReconciler,
)
from .sourceresolver import PollingEnqueuer, SourceResolverReconciler
from .tracker import Reference, Tracker

__all__ = [
    "BuildReconciler",
    "BuilderReconciler",
    "ClusterBuilderReconciler",
    "ClusterBuildpackReconciler",
    "ClusterLifecycleReconciler",
    "ClusterStackReconciler",
    "ClusterStoreReconciler",
    "ExtensionReconciler",
    "ImageReconciler",
    "NetworkErrorReconciler",
    "PollingEnqueuer",
    "ReconcileContext",
    "Reference",
    "SourceResolverReconciler",
    "StatusReconciler",
    "Tracker",
]
