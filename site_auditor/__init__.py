"""Site Auditor - AI-assisted website audit engine."""

__version__ = "1.0.0"
