"""Site Auditor REST API."""
