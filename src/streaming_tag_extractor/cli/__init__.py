"""Command-line interface for streaming tag extraction."""

from .main import main

__all__ = ["main"]
