"""
Agenda-specific Validators

Validation utilities for document names and ids received by the API.
"""

import re
import frappe
from frappe import _

MAX_DOCNAME_LENGTH = 140

# Markup and SQL fragments that never appear in a legitimate docname
_SUSPICIOUS_DOCNAME = re.compile(
    r"<script|javascript:|on(?:click|error)|\b(?:select|insert|update|delete|drop|union)\s+|--|;",
    re.IGNORECASE
)


def validate_docname(name: str, field_name: str = "name") -> str:
    """
    Validate a document name (ID) received from a caller.

    Args:
        name: Document name to validate
        field_name: Name of field for error messages

    Returns:
        str: The stripped document name

    Raises:
        frappe.ValidationError: If the name is empty, too long or suspicious
    """
    name = str(name).strip() if name is not None else ""
    if not name:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    if len(name) > MAX_DOCNAME_LENGTH:
        frappe.throw(_("{0} is too long").format(field_name), frappe.ValidationError)

    if _SUSPICIOUS_DOCNAME.search(name):
        frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)

    return name


def validate_optional_docname(name: str, field_name: str = "name") -> str:
    """Like validate_docname, but empty values pass through as None."""
    if name in (None, ""):
        return None
    return validate_docname(name, field_name)


def validate_docname_list(names, field_name: str = "names") -> list:
    """
    Validate every id of a list (native list, JSON string or comma separated).

    Returns:
        list: Validated ids, order preserved
    """
    if isinstance(names, str):
        names = frappe.parse_json(names) if names.strip().startswith("[") else names.split(",")
    if not isinstance(names, (list, tuple)):
        frappe.throw(_("{0} must be a list").format(field_name), frappe.ValidationError)
    return [validate_docname(n, field_name) for n in names if str(n).strip()]
