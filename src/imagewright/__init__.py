"""Cluster build orchestrator: images, builds, builders and their sources."""

__version__ = "0.1.0"
