# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- ORDERS --

ORDER_PERMISSIONS = [
    ("VIEW_ORDERS", "View Orders", "View order list and details", PermissionCategory.ORDERS),
    ("CREATE_ORDERS", "Create Orders", "Create new orders (reserves stock, posts credit invoices)", PermissionCategory.ORDERS),
    ("EDIT_ORDERS", "Edit Orders", "Modify pending orders and change order status", PermissionCategory.ORDERS),
    ("APPROVE_ORDERS", "Approve Orders", "Approve pending orders (deducts stock)", PermissionCategory.ORDERS),
    ("DELETE_ORDERS", "Delete Orders", "Delete orders (restores stock, refunds credit)", PermissionCategory.ORDERS),
]


# -- FULFILLMENT --

FULFILLMENT_PERMISSIONS = [
    ("PREPARE_ORDERS", "Prepare Orders", "Advance approved orders through the packer workflow", PermissionCategory.FULFILLMENT),
    ("MANAGE_DELIVERY", "Manage Delivery", "Record transporter details and cargo receipts", PermissionCategory.FULFILLMENT),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    ("VIEW_INVENTORY", "View Inventory", "View stock levels per store", PermissionCategory.INVENTORY),
    ("MANAGE_INVENTORY", "Manage Inventory", "Set stock counts and restock items", PermissionCategory.INVENTORY),
    ("VIEW_STORES", "View Stores", "View store information", PermissionCategory.INVENTORY),
    ("MANAGE_STORES", "Manage Stores", "Add and edit stores", PermissionCategory.INVENTORY),
]


# -- CUSTOMERS --

CUSTOMER_PERMISSIONS = [
    ("VIEW_CUSTOMERS", "View Customers", "View customer list and details", PermissionCategory.CUSTOMERS),
    ("MANAGE_CUSTOMERS", "Manage Customers", "Add and edit customers", PermissionCategory.CUSTOMERS),
    ("VIEW_CUSTOMER_ACCOUNTS", "View Customer Accounts", "View credit balances and transaction history", PermissionCategory.CUSTOMERS),
    ("MANAGE_CREDIT", "Manage Credit", "Record payments and credit adjustments", PermissionCategory.CUSTOMERS),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    ("MANAGE_USERS", "Manage Users", "Manage user accounts and roles", PermissionCategory.SYSTEM),
    ("MANAGE_SYSTEM", "Manage System", "Replay failed ledger intents and run maintenance", PermissionCategory.SYSTEM),
]


PERMISSION_DEFINITIONS = (
    ORDER_PERMISSIONS
    + FULFILLMENT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
