"""Service layer for the Site Auditor API."""

from .audit_service import AuditService, get_audit_service, reset_audit_service

__all__ = [
    "AuditService",
    "get_audit_service",
    "reset_audit_service",
]
