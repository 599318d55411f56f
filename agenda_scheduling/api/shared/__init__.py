"""
Shared utilities for Agenda Scheduling API.

Rate limiting, sanitization and document-name validators used by the
whitelisted endpoints.
"""

from agenda_scheduling.api.security import (
    check_guest_rate_limit,
    check_rate_limit,
    get_client_ip,
    resolve_organization,
    sanitize_string,
)

from .validators import (
    validate_docname,
    validate_docname_list,
    validate_optional_docname,
)

__all__ = [
    "check_guest_rate_limit",
    "check_rate_limit",
    "get_client_ip",
    "resolve_organization",
    "sanitize_string",
    "validate_docname",
    "validate_docname_list",
    "validate_optional_docname",
]
