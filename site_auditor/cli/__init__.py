"""Command line interface for Site Auditor."""

from .main import app

__all__ = ["app"]
