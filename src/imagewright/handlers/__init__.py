"""Handler modules for the imagewright operator."""

from . import events

__all__ = ["events"]
