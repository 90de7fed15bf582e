"""API routes for the Site Auditor REST API."""

from .audit import router as audit_router

__all__ = [
    "audit_router",
]
