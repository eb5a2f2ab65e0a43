# Overview: Default role to permission mapping (least privilege).

from .definitions import PERMISSION_DEFINITIONS


DEFAULT_ROLE_PERMISSIONS = {
    # Admin has everything
    "admin": [perm[0] for perm in PERMISSION_DEFINITIONS],
    "manager": [
        "PROCESS_RETURN",
        "VIEW_RETURNS",
        "VIEW_CUSTOMER_CONTACT",
    ],
    # Cashiers process returns but see masked customer contact details
    "cashier": [
        "PROCESS_RETURN",
        "VIEW_RETURNS",
    ],
}
