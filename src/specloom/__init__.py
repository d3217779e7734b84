"""Specloom - diagram-first documentation validator and traceability graph."""

__version__ = "0.4.0"
