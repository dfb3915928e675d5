"""Instrumentation log analyzer."""

__version__ = "1.0.0"
