"""FastMCP server exposing the counting workflow to AI assistants."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from sqlalchemy.exc import SQLAlchemyError

from .database import crud
from .database.engine import AsyncSessionLocal, close_db, init_db
from .database.models import InventoryStatus
from .exceptions import ShelfwiseError
from .formatting import format_cycle_count, format_cycle_count_item, format_inventory_item, format_prep_item

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: Any) -> AsyncGenerator[None, None]:
    """Manage database lifecycle during server startup and shutdown."""
    logger.info("Starting Shelfwise MCP Server...")
    try:
        await init_db()
        logger.info("Database initialized successfully")
        yield
    finally:
        logger.info("Shutting down server...")
        await close_db()
        logger.info("Server shutdown complete")


mcp = FastMCP(name="shelfwise", lifespan=lifespan)


@mcp.tool()  # type: ignore[misc]
async def list_inventory(
    status: Optional[str] = None,
    organization_id: Optional[int] = None,
) -> dict[str, Any]:
    """List inventory items with per-status totals.

    Args:
        status: Only return items in this status ("pending", "completed" or "sold")
        organization_id: Restrict to one organization (all items when omitted)

    Returns:
        Dictionary with status, count, items and stats
    """
    try:
        status_filter = InventoryStatus(status) if status else None
    except ValueError:
        raise ToolError(f"Unknown status '{status}'. Use one of: pending, completed, sold")

    try:
        async with AsyncSessionLocal() as session:
            items = await crud.list_inventory_items(session, organization_id, status_filter)
            stats = await crud.get_inventory_stats(session, organization_id)
            return {
                "status": "success",
                "count": len(items),
                "items": [format_inventory_item(item) for item in items],
                "stats": stats,
            }
    except SQLAlchemyError as e:
        logger.exception("Error listing inventory")
        raise ToolError(f"Failed to list inventory: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def list_cycle_counts(organization_id: Optional[int] = None) -> dict[str, Any]:
    """List cycle counts, newest first, with how far each has progressed.

    Args:
        organization_id: Restrict to one organization (all counts when omitted)
    """
    try:
        async with AsyncSessionLocal() as session:
            cycle_counts = await crud.list_cycle_counts(session, organization_id)
            return {
                "status": "success",
                "count": len(cycle_counts),
                "cycle_counts": [format_cycle_count(cc, stats) for cc, stats in cycle_counts],
            }
    except SQLAlchemyError as e:
        logger.exception("Error listing cycle counts")
        raise ToolError(f"Failed to list cycle counts: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def get_cycle_count(cycle_count_id: int, organization_id: Optional[int] = None) -> dict[str, Any]:
    """Show one cycle count and every item in it, uncounted items first.

    Use this to find which items still need counting and which counts are off.

    Args:
        cycle_count_id: ID of the cycle count
        organization_id: Restrict lookup to one organization
    """
    try:
        async with AsyncSessionLocal() as session:
            cycle_count = await crud.get_cycle_count(session, organization_id, cycle_count_id)
            if cycle_count is None:
                raise ToolError("Cycle count not found")
            stats = await crud.get_cycle_count_stats(session, [cycle_count.id])
            items = await crud.list_cycle_count_items(session, cycle_count.id)
            return {
                "status": "success",
                "cycle_count": format_cycle_count(cycle_count, stats[cycle_count.id], items),
            }
    except SQLAlchemyError as e:
        logger.exception(f"Error loading cycle count {cycle_count_id}")
        raise ToolError(f"Failed to get cycle count: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def start_cycle_count(
    name: str,
    notes: Optional[str] = None,
    organization_id: Optional[int] = None,
) -> dict[str, Any]:
    """Start a cycle count covering every pending inventory item.

    Expected quantities are frozen at this moment; later inventory edits do not
    change them.

    Args:
        name: Name for the count (e.g., "Monday walk-in count")
        notes: Optional notes
        organization_id: Organization whose items are counted

    Examples:
        - "Start a cycle count called Weekly" -> start_cycle_count("Weekly")
    """
    try:
        async with AsyncSessionLocal() as session:
            cycle_count, stats = await crud.start_cycle_count(session, organization_id, name, notes)
            return {
                "status": "success",
                "message": f"Started cycle count '{cycle_count.name}' with {stats.total_items} items",
                "cycle_count": format_cycle_count(cycle_count, stats),
            }
    except ShelfwiseError as e:
        raise ToolError(e.message)
    except SQLAlchemyError as e:
        logger.exception("Error starting cycle count")
        raise ToolError(f"Failed to start cycle count: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def record_count(
    cycle_count_id: int,
    inventory_item_id: int,
    counted_qty: int,
    notes: Optional[str] = None,
    organization_id: Optional[int] = None,
) -> dict[str, Any]:
    """Record how many of an item were physically found.

    Recording again for the same item replaces the earlier count. Inventory
    quantities only change when the cycle count is completed.

    Args:
        cycle_count_id: ID of an in-progress cycle count
        inventory_item_id: ID of the inventory item that was counted
        counted_qty: Quantity found (0 or more)
        notes: Optional notes, e.g. "two damaged"
        organization_id: Organization the count belongs to
    """
    try:
        async with AsyncSessionLocal() as session:
            row = await crud.record_count(
                session, organization_id, cycle_count_id, inventory_item_id, counted_qty, notes
            )
            return {
                "status": "success",
                "message": f"Recorded {counted_qty} (variance {row.variance:+d})",
                "item": format_cycle_count_item(row),
            }
    except ShelfwiseError as e:
        raise ToolError(e.message)
    except SQLAlchemyError as e:
        logger.exception(f"Error recording count in cycle count {cycle_count_id}")
        raise ToolError(f"Failed to record count: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def complete_cycle_count(
    cycle_count_id: int,
    apply_changes: bool = True,
    organization_id: Optional[int] = None,
) -> dict[str, Any]:
    """Close a cycle count.

    With apply_changes (the default) every counted item's inventory quantity is
    set to the counted quantity. Uncounted items keep their quantity.

    Args:
        cycle_count_id: ID of an in-progress cycle count
        apply_changes: Whether to write counted quantities to inventory
        organization_id: Organization the count belongs to
    """
    try:
        async with AsyncSessionLocal() as session:
            cycle_count, stats = await crud.complete_cycle_count(
                session, organization_id, cycle_count_id, apply_changes
            )
            applied = "applied to inventory" if apply_changes else "not applied"
            return {
                "status": "success",
                "message": f"Completed '{cycle_count.name}': {stats.counted_items} counts {applied}",
                "cycle_count": format_cycle_count(cycle_count, stats),
            }
    except ShelfwiseError as e:
        raise ToolError(e.message)
    except SQLAlchemyError as e:
        logger.exception(f"Error completing cycle count {cycle_count_id}")
        raise ToolError(f"Failed to complete cycle count: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def get_prep_sheet(organization_id: Optional[int] = None) -> dict[str, Any]:
    """Show the prep sheet: active prep items with how much is needed to reach par.

    Args:
        organization_id: Restrict to one organization
    """
    try:
        async with AsyncSessionLocal() as session:
            items = await crud.list_prep_items(session, organization_id)
            return {
                "status": "success",
                "count": len(items),
                "items": [
                    {
                        **format_prep_item(item),
                        "needed": max(item.par_level - item.current_level, 0),
                    }
                    for item in items
                ],
            }
    except SQLAlchemyError as e:
        logger.exception("Error loading prep sheet")
        raise ToolError(f"Failed to load prep sheet: {str(e)}")


def main() -> None:
    """Entry point for the MCP server."""
    logger.info("Initializing Shelfwise MCP Server")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
