# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- RETURNS --

RETURN_PERMISSIONS = [
    (
        "PROCESS_RETURN",
        "Process Return",
        "Look up returnable items and submit returns/refunds at the reception desk",
        PermissionCategory.RETURNS,
    ),
    (
        "VIEW_RETURNS",
        "View Returns",
        "View and reprint committed returns",
        PermissionCategory.RETURNS,
    ),
]


# -- CUSTOMERS --

CUSTOMER_PERMISSIONS = [
    (
        "VIEW_CUSTOMER_CONTACT",
        "View Customer Contact",
        "See unmasked customer phone numbers and email addresses",
        PermissionCategory.CUSTOMERS,
    ),
]


PERMISSION_DEFINITIONS = RETURN_PERMISSIONS + CUSTOMER_PERMISSIONS
