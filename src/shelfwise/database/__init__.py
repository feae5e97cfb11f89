"""Database package initialization."""

from .crud import (
    CycleCountStats,
    add_order_item,
    batch_update_prep_levels,
    complete_cycle_count,
    create_inventory_item,
    create_order,
    create_organization,
    create_prep_item,
    create_user,
    create_vendor,
    delete_cycle_count,
    delete_inventory_item,
    delete_order,
    delete_prep_item,
    delete_vendor,
    generate_order_number,
    get_cycle_count,
    get_cycle_count_stats,
    get_inventory_item,
    get_inventory_stats,
    get_order,
    get_prep_item,
    get_user_by_email,
    get_user_default_organization,
    get_vendor,
    is_organization_member,
    link_vendor_product,
    list_below_par_products,
    list_cycle_count_items,
    list_cycle_counts,
    list_inventory_items,
    list_orders,
    list_organizations,
    list_prep_items,
    list_prep_logs,
    list_vendor_products,
    list_vendors,
    log_prep,
    receive_order,
    record_count,
    remove_order_item,
    search_inventory_items,
    start_cycle_count,
    submit_order,
    unlink_vendor_product,
    update_cycle_count,
    update_inventory_item,
    update_order,
    update_order_item,
    update_prep_item,
    update_vendor,
)
from .engine import AsyncSessionLocal, close_db, init_db
from .models import (
    Base,
    CycleCount,
    CycleCountItem,
    CycleCountStatus,
    InventoryItem,
    InventoryStatus,
    MemberRole,
    OrderItem,
    OrderStatus,
    Organization,
    OrganizationMember,
    PrepItem,
    PrepItemType,
    PrepLog,
    PrepUnit,
    PurchaseOrder,
    User,
    Vendor,
    VendorProduct,
)

__all__ = [
    # Models
    "Base",
    "User",
    "Organization",
    "OrganizationMember",
    "MemberRole",
    "InventoryItem",
    "InventoryStatus",
    "CycleCount",
    "CycleCountItem",
    "CycleCountStatus",
    "PrepItem",
    "PrepItemType",
    "PrepLog",
    "PrepUnit",
    "Vendor",
    "VendorProduct",
    "PurchaseOrder",
    "OrderItem",
    "OrderStatus",
    # Engine
    "AsyncSessionLocal",
    "init_db",
    "close_db",
    # CRUD - Users & organizations
    "create_user",
    "get_user_by_email",
    "create_organization",
    "list_organizations",
    "is_organization_member",
    "get_user_default_organization",
    # CRUD - Inventory
    "create_inventory_item",
    "get_inventory_item",
    "list_inventory_items",
    "get_inventory_stats",
    "update_inventory_item",
    "delete_inventory_item",
    "search_inventory_items",
    # CRUD - Cycle counts
    "CycleCountStats",
    "get_cycle_count_stats",
    "get_cycle_count",
    "list_cycle_counts",
    "list_cycle_count_items",
    "start_cycle_count",
    "record_count",
    "complete_cycle_count",
    "update_cycle_count",
    "delete_cycle_count",
    # CRUD - Prep sheet
    "create_prep_item",
    "get_prep_item",
    "list_prep_items",
    "update_prep_item",
    "delete_prep_item",
    "log_prep",
    "list_prep_logs",
    "batch_update_prep_levels",
    # CRUD - Vendors
    "create_vendor",
    "get_vendor",
    "list_vendors",
    "update_vendor",
    "delete_vendor",
    "list_vendor_products",
    "list_below_par_products",
    "link_vendor_product",
    "unlink_vendor_product",
    # CRUD - Purchase orders
    "generate_order_number",
    "get_order",
    "list_orders",
    "create_order",
    "update_order",
    "add_order_item",
    "update_order_item",
    "remove_order_item",
    "submit_order",
    "receive_order",
    "delete_order",
]
