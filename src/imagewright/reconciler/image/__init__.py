from .build_list import BuildList
from .build_required import BuildDecision, Change, determine_build
from .buildcache import get_bytes, reconcile_build_cache
from .reconciler import ImageReconciler

__all__ = [
    "BuildDecision",
    "BuildList",
    "Change",
    "ImageReconciler",
    "determine_build",
    "get_bytes",
    "reconcile_build_cache",
]
