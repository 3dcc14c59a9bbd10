# Overview: Default role -> permission mapping applied when an organization is initialized.

from .definitions import PERMISSION_DEFINITIONS


_ALL = [perm[0] for perm in PERMISSION_DEFINITIONS]

DEFAULT_ROLES = [
    ("admin", "Full system access"),
    ("business_owner", "Owner of the business, full access"),
    ("sales_rep", "Creates orders and manages customers"),
    ("inventory_manager", "Maintains stock levels and stores"),
    ("packer", "Prepares approved orders for delivery"),
    ("accountant", "Reviews orders and customer accounts"),
    ("customer", "Read-only access to orders"),
]

DEFAULT_ROLE_PERMISSIONS = {
    "admin": list(_ALL),
    "business_owner": list(_ALL),
    "sales_rep": [
        "VIEW_ORDERS",
        "CREATE_ORDERS",
        "EDIT_ORDERS",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
        "VIEW_INVENTORY",
    ],
    "inventory_manager": [
        "VIEW_INVENTORY",
        "MANAGE_INVENTORY",
        "VIEW_STORES",
        "MANAGE_STORES",
        "VIEW_ORDERS",
        "VIEW_CUSTOMERS",
    ],
    "packer": [
        "VIEW_ORDERS",
        "EDIT_ORDERS",
        "PREPARE_ORDERS",
        "MANAGE_DELIVERY",
        "VIEW_INVENTORY",
    ],
    "accountant": [
        "VIEW_ORDERS",
        "VIEW_CUSTOMERS",
        "VIEW_CUSTOMER_ACCOUNTS",
        "VIEW_INVENTORY",
    ],
    "customer": [
        "VIEW_ORDERS",
    ],
}
