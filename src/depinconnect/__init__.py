"""Resilient connectors for DePIN compute-sharing networks."""

__version__ = "0.1.0"
