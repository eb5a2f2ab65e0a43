# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    RETURNS = "RETURNS"
    CUSTOMERS = "CUSTOMERS"
