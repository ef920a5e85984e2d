"""Translate natural-language requests into shell commands."""

__version__ = "0.3.0"
