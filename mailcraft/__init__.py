"""Mailcraft: staged email campaign generation."""

__version__ = "0.1.0"

__all__ = ["__version__"]
