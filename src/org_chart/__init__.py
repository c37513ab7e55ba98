"""Organisational hierarchy core: departments, positions, employees."""

__version__ = "0.1.0"
