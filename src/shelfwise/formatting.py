"""Shape database rows into the camelCase JSON the mobile client expects."""

from datetime import datetime
from typing import Any, Optional

from .database.crud import CycleCountStats
from .database.models import (
    CycleCount,
    CycleCountItem,
    InventoryItem,
    OrderItem,
    Organization,
    PrepItem,
    PrepLog,
    PurchaseOrder,
    Vendor,
    VendorProduct,
)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _inventory_summary(item: Optional[InventoryItem]) -> Optional[dict[str, Any]]:
    if item is None:
        return None
    return {
        "id": item.id,
        "name": item.name,
        "imageUrl": item.image_url,
        "binNumber": item.bin_number,
        "rackNumber": item.rack_number,
    }


def format_inventory_item(item: InventoryItem) -> dict[str, Any]:
    """Serialize an inventory item with every client-visible column."""
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "imageUrl": item.image_url,
        "binNumber": item.bin_number,
        "rackNumber": item.rack_number,
        "platform": item.platform,
        "status": item.status.value,
        "quantity": item.quantity,
        "parLevel": item.par_level,
        "cost": item.cost,
        "soldAt": _isoformat(item.sold_at),
        "soldPrice": item.sold_price,
        "createdAt": _isoformat(item.created_at),
        "updatedAt": _isoformat(item.updated_at),
    }


def format_cycle_count(
    cycle_count: CycleCount,
    stats: CycleCountStats,
    items: Optional[list[CycleCountItem]] = None,
) -> dict[str, Any]:
    """Serialize a cycle count with its derived stats.

    ``items`` is only included for the detail view.
    """
    data: dict[str, Any] = {
        "id": cycle_count.id,
        "name": cycle_count.name,
        "status": cycle_count.status.value,
        "startedAt": _isoformat(cycle_count.started_at),
        "completedAt": _isoformat(cycle_count.completed_at),
        "notes": cycle_count.notes,
        "createdAt": _isoformat(cycle_count.created_at),
        "updatedAt": _isoformat(cycle_count.updated_at),
        "totalItems": stats.total_items,
        "countedItems": stats.counted_items,
        "itemsWithVariance": stats.items_with_variance,
        "progress": stats.progress,
    }
    if items is not None:
        data["items"] = [format_cycle_count_item(item) for item in items]
    return data


def format_cycle_count_item(row: CycleCountItem) -> dict[str, Any]:
    """Serialize one count row with a short summary of its inventory item.

    ``inventoryItem`` is null when the item has since been deleted.
    """
    return {
        "id": row.id,
        "cycleCountId": row.cycle_count_id,
        "inventoryItemId": row.inventory_item_id,
        "expectedQty": row.expected_qty,
        "countedQty": row.counted_qty,
        "variance": row.variance,
        "notes": row.notes,
        "countedAt": _isoformat(row.counted_at),
        "createdAt": _isoformat(row.created_at),
        "updatedAt": _isoformat(row.updated_at),
        "inventoryItem": _inventory_summary(row.inventory_item),
    }


def format_prep_item(item: PrepItem) -> dict[str, Any]:
    """Serialize a prep sheet item."""
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "itemType": item.item_type.value,
        "parLevel": item.par_level,
        "currentLevel": item.current_level,
        "unit": item.unit.value,
        "notes": item.notes,
        "sortOrder": item.sort_order,
        "isActive": item.is_active,
        "createdAt": _isoformat(item.created_at),
        "updatedAt": _isoformat(item.updated_at),
    }


def format_prep_log(log: PrepLog) -> dict[str, Any]:
    """Serialize one prep log entry."""
    return {
        "id": log.id,
        "prepItemId": log.prep_item_id,
        "quantityPrepped": log.quantity_prepped,
        "preppedBy": log.prepped_by,
        "notes": log.notes,
        "createdAt": _isoformat(log.created_at),
    }


def format_organization(organization: Organization) -> dict[str, Any]:
    """Serialize an organization without its member list."""
    return {
        "id": organization.id,
        "name": organization.name,
        "createdAt": _isoformat(organization.created_at),
    }


def format_vendor(vendor: Vendor) -> dict[str, Any]:
    """Serialize a vendor's contact details."""
    return {
        "id": vendor.id,
        "name": vendor.name,
        "contactName": vendor.contact_name,
        "email": vendor.email,
        "phone": vendor.phone,
        "address": vendor.address,
        "notes": vendor.notes,
        "createdAt": _isoformat(vendor.created_at),
        "updatedAt": _isoformat(vendor.updated_at),
    }


def format_vendor_product(product: VendorProduct) -> dict[str, Any]:
    """Serialize a vendor's link to an inventory item (``inventory_item`` must be loaded)."""
    return {
        "id": product.id,
        "vendorId": product.vendor_id,
        "inventoryItemId": product.inventory_item_id,
        "inventoryItem": _inventory_summary(product.inventory_item),
        "vendorSku": product.vendor_sku,
        "unitCost": product.unit_cost,
        "minOrderQty": product.min_order_qty,
    }


def format_below_par(product: VendorProduct) -> dict[str, Any]:
    """Serialize a linked item that is below par, with the quantity needed to reach par."""
    item = product.inventory_item
    par_level = item.par_level or 0
    return {
        "inventoryItem": format_inventory_item(item),
        "vendorProduct": format_vendor_product(product),
        "currentQty": item.quantity,
        "parLevel": par_level,
        "orderQty": par_level - item.quantity,
    }


def format_order_item(line: OrderItem) -> dict[str, Any]:
    return {
        "id": line.id,
        "orderId": line.order_id,
        "inventoryItemId": line.inventory_item_id,
        "inventoryItem": _inventory_summary(line.inventory_item),
        "quantity": line.quantity,
        "unitCost": line.unit_cost,
        "totalCost": line.total_cost,
        "notes": line.notes,
    }


def format_order(order: PurchaseOrder) -> dict[str, Any]:
    """Serialize a purchase order with its vendor and lines.

    The order must have been loaded with ``vendor`` and ``items`` (and each
    line's ``inventory_item``) eagerly.
    """
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "vendorId": order.vendor_id,
        "vendor": format_vendor(order.vendor),
        "status": order.status.value,
        "notes": order.notes,
        "submittedAt": _isoformat(order.submitted_at),
        "receivedAt": _isoformat(order.received_at),
        "totalAmount": order.total_amount,
        "items": [format_order_item(line) for line in order.items],
        "createdAt": _isoformat(order.created_at),
        "updatedAt": _isoformat(order.updated_at),
    }
