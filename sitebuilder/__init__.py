"""Assemble a deployable site from its enabled modules."""

__version__ = "1.0.0"
