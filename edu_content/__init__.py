"""Educational content service: learning paths and YouTube imports."""

__version__ = "0.1.0"
