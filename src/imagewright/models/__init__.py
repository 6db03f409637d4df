"""Resource models for every kind the operator reconciles."""

# Import all models to ensure they're registered
from . import build
from . import builder
from . import image
from . import source_resolver

__all__ = ["build", "builder", "image", "source_resolver"]
