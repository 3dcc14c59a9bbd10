# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    ORDERS = "ORDERS"
    FULFILLMENT = "FULFILLMENT"
    INVENTORY = "INVENTORY"
    CUSTOMERS = "CUSTOMERS"
    SYSTEM = "SYSTEM"
