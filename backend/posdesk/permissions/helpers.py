# Overview: Utility functions for permission lookups and validation.

from .definitions import PERMISSION_DEFINITIONS


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return any(perm[0] == code for perm in PERMISSION_DEFINITIONS)
