"""
Security Utilities for Public APIs

Provides rate limiting and input sanitization for APIs that allow guest
access.
"""

import re
import frappe
from frappe import _
from frappe.utils import cint


# ===================
# Rate Limiting
# ===================

def check_rate_limit(action: str, limit: int = 10, seconds: int = 60) -> None:
    """
    Check rate limit for an action by IP address.

    Uses Frappe's cache (Redis) to track request counts per IP.

    Args:
        action: Identifier for the action being rate limited
        limit: Maximum number of requests allowed
        seconds: Time window in seconds

    Raises:
        frappe.TooManyRequestsError: If rate limit exceeded
    """
    ip = get_client_ip()
    cache_key = f"rate_limit:agenda_scheduling:{action}:{ip}"

    current = cint(frappe.cache.get_value(cache_key) or 0)

    if current >= limit:
        frappe.log_error(
            title=_("Rate Limit Exceeded"),
            message=f"IP: {ip}, Action: {action}, Limit: {limit}/{seconds}s"
        )
        frappe.throw(
            _("Too many requests. Please wait a moment and try again."),
            frappe.TooManyRequestsError
        )

    frappe.cache.set_value(cache_key, current + 1, expires_in_sec=seconds)


def check_guest_rate_limit(action: str, limit: int = 30, seconds: int = 60) -> None:
    """Applies check_rate_limit only to unauthenticated callers."""
    if frappe.session.user == "Guest":
        check_rate_limit(action, limit=limit, seconds=seconds)


def get_client_ip() -> str:
    """
    Get the real client IP address, handling proxies.

    Returns:
        str: Client IP address
    """
    # X-Forwarded-For can contain multiple IPs, take the first one
    forwarded_for = frappe.request.headers.get('X-Forwarded-For', '') if frappe.request else ''
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = frappe.request.headers.get('X-Real-IP', '') if frappe.request else ''
    if real_ip:
        return real_ip.strip()

    return (frappe.request.remote_addr if frappe.request else None) or 'unknown'


# ===================
# Tenant Resolution
# ===================

def resolve_organization(organizacion_id: str = None) -> str:
    """
    Resolve the organization (tenant) for the current caller.

    Guests must send organizacion_id. Authenticated users fall back to
    their "organization" user default.

    Raises:
        frappe.ValidationError: If no organization can be resolved
    """
    from agenda_scheduling.api.shared.validators import validate_docname

    if organizacion_id:
        return validate_docname(organizacion_id, "organizacion_id")

    if frappe.session.user != "Guest":
        default = frappe.defaults.get_user_default("organization")
        if default:
            return default

    frappe.throw(_("organizacion_id is required"), frappe.ValidationError)


# ===================
# Input Validation
# ===================

def sanitize_string(value: str, max_length: int = 500) -> str:
    """
    General string sanitization.

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        str: Sanitized string
    """
    if not value:
        return None

    value = str(value).strip()

    if len(value) > max_length:
        value = value[:max_length]

    # Remove null bytes and other control characters
    value = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', value)

    return value
