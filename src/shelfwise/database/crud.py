"""CRUD operations for inventory, cycle counts, prep sheets, vendors and orders.

Every function that touches tenant-owned rows takes an ``organization_id``.
``None`` is the unscoped (global) view; any other value restricts reads and
writes to that organization's rows.
"""

import logging
import secrets
import string
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from sqlalchemy import Select, case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, selectinload

from ..exceptions import NotFoundError, StateConflictError, ValidationError
from .models import (
    INT32_MAX,
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
    PrepLog,
    PurchaseOrder,
    User,
    Vendor,
    VendorProduct,
)

logger = logging.getLogger(__name__)

_S = TypeVar("_S", bound=Select[Any])


def _scoped(stmt: _S, model: Any, organization_id: Optional[int]) -> _S:
    """Restrict a select to one organization's rows (no-op for the global view)."""
    if organization_id is None:
        return stmt
    return stmt.where(model.organization_id == organization_id)


# ===== User Operations =====


async def create_user(
    session: AsyncSession,
    email: str,
    hashed_password: str,
) -> User:
    """Create a new user.

    Args:
        session: Database session
        email: User's email address
        hashed_password: Pre-hashed password

    Returns:
        The created user
    """
    user = User(email=email, hashed_password=hashed_password)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info(f"Created user: {user.email} (id={user.id})")
    return user


async def get_user_by_email(
    session: AsyncSession,
    email: str,
) -> Optional[User]:
    """Get a user by email address.

    Args:
        session: Database session
        email: Email address to look up

    Returns:
        The user if found, None otherwise
    """
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


# ===== Organization Operations =====


async def create_organization(session: AsyncSession, name: str, owner_user_id: int) -> Organization:
    """Create a new organization and add the owner as a member.

    Args:
        session: Database session
        name: Name of the organization
        owner_user_id: ID of the user who owns this organization

    Returns:
        The created organization
    """
    organization = Organization(name=name)
    session.add(organization)
    await session.flush()

    member = OrganizationMember(
        organization_id=organization.id, user_id=owner_user_id, role=MemberRole.OWNER
    )
    session.add(member)
    await session.commit()
    await session.refresh(organization)
    logger.info(f"Created organization: {organization.name} (id={organization.id}, owner={owner_user_id})")
    return organization


async def list_organizations(session: AsyncSession, user_id: int) -> list[Organization]:
    """List all organizations the user is a member of, ordered by name."""
    result = await session.execute(
        select(Organization)
        .join(OrganizationMember, Organization.id == OrganizationMember.organization_id)
        .where(OrganizationMember.user_id == user_id)
        .options(selectinload(Organization.members))
        .order_by(Organization.name)
    )
    return list(result.scalars().all())


async def is_organization_member(session: AsyncSession, organization_id: int, user_id: int) -> bool:
    """Check if a user is a member of an organization."""
    result = await session.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def get_user_default_organization(
    session: AsyncSession,
    user_id: int,
    name_template: str = "{email}'s Organization",
) -> Optional[Organization]:
    """Get the user's default organization (first by ID, ascending).

    If the user belongs to no organization, one is created from
    ``name_template`` so authenticated callers are always tenant-scoped.

    Args:
        session: Database session
        user_id: ID of the user
        name_template: Format string for the new organization's name

    Returns:
        The user's default organization, or None if the user does not exist
    """
    result = await session.execute(
        select(Organization)
        .join(OrganizationMember, Organization.id == OrganizationMember.organization_id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.id.asc())
        .limit(1)
    )
    organization = result.scalar_one_or_none()
    if organization:
        return organization

    user_result = await session.execute(select(User).where(User.id == user_id))
    user = user_result.scalar_one_or_none()
    if not user:
        return None

    return await create_organization(session, name_template.format(email=user.email), user_id)


# ===== Inventory Item Operations =====


async def create_inventory_item(
    session: AsyncSession,
    organization_id: Optional[int],
    name: str,
    image_url: str = "",
    quantity: int = 1,
    description: Optional[str] = None,
    bin_number: str = "",
    rack_number: str = "",
    platform: str = "",
    par_level: Optional[int] = None,
    cost: Optional[float] = None,
    status: InventoryStatus = InventoryStatus.PENDING,
) -> InventoryItem:
    """Create a new inventory item.

    Args:
        session: Database session
        organization_id: Owning organization (None for the global view)
        name: Name of the item
        image_url: Reference to the item's photo
        quantity: Quantity on hand
        description: Optional description
        bin_number: Bin location label
        rack_number: Rack location label
        platform: Category or sales platform tag
        par_level: Minimum quantity to keep on hand (None = not tracked)
        cost: Unit cost
        status: Initial lifecycle status

    Returns:
        The created inventory item
    """
    item = InventoryItem(
        organization_id=organization_id,
        name=name,
        image_url=image_url,
        quantity=quantity,
        description=description,
        bin_number=bin_number,
        rack_number=rack_number,
        platform=platform,
        par_level=par_level,
        cost=cost,
        status=status,
    )
    if status is InventoryStatus.SOLD:
        item.sold_at = datetime.now(timezone.utc)
    session.add(item)
    await session.commit()
    await session.refresh(item)
    logger.info(f"Created item: {item.name} (id={item.id}, organization_id={organization_id})")
    return item


async def get_inventory_item(
    session: AsyncSession, organization_id: Optional[int], item_id: int
) -> Optional[InventoryItem]:
    """Get an inventory item by ID.

    Args:
        session: Database session
        organization_id: Caller's organization (prevents cross-tenant reads)
        item_id: ID of the item to retrieve

    Returns:
        The inventory item if found and visible, None otherwise
    """
    stmt = _scoped(select(InventoryItem).where(InventoryItem.id == item_id), InventoryItem, organization_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_inventory_items(
    session: AsyncSession,
    organization_id: Optional[int],
    status: Optional[InventoryStatus] = None,
) -> list[InventoryItem]:
    """List visible inventory items, newest first."""
    stmt = _scoped(select(InventoryItem), InventoryItem, organization_id)
    if status is not None:
        stmt = stmt.where(InventoryItem.status == status)
    stmt = stmt.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_inventory_stats(session: AsyncSession, organization_id: Optional[int]) -> dict[str, int]:
    """Count visible items per status.

    Returns:
        Dict with ``total`` and one key per status value
    """
    stmt = _scoped(
        select(InventoryItem.status, func.count(InventoryItem.id)).group_by(InventoryItem.status),
        InventoryItem,
        organization_id,
    )
    result = await session.execute(stmt)
    counts = {status.value: 0 for status in InventoryStatus}
    for status, count in result.all():
        counts[status.value] = count
    return {"total": sum(counts.values()), **counts}


async def update_inventory_item(
    session: AsyncSession,
    organization_id: Optional[int],
    item_id: int,
    **changes: Any,
) -> Optional[InventoryItem]:
    """Update an inventory item.

    Only the keyword arguments passed are written. Moving the item to
    ``sold`` from any other status stamps ``sold_at``.

    Args:
        session: Database session
        organization_id: Caller's organization
        item_id: ID of the item to update
        **changes: Column values to set

    Returns:
        The updated item if found, None otherwise
    """
    item = await get_inventory_item(session, organization_id, item_id)
    if not item:
        return None

    new_status = changes.get("status")
    if new_status is InventoryStatus.SOLD and item.status is not InventoryStatus.SOLD:
        item.sold_at = datetime.now(timezone.utc)

    for field, value in changes.items():
        setattr(item, field, value)

    await session.commit()
    await session.refresh(item)
    logger.info(f"Updated item: {item.name} (id={item.id})")
    return item


async def delete_inventory_item(session: AsyncSession, organization_id: Optional[int], item_id: int) -> bool:
    """Delete an inventory item.

    Cycle count rows that snapshot the item are kept; their
    ``inventory_item_id`` is cleared by the foreign key.

    Returns:
        True if the item was deleted, False if not found
    """
    item = await get_inventory_item(session, organization_id, item_id)
    if not item:
        return False
    await session.execute(delete(InventoryItem).where(InventoryItem.id == item.id))
    await session.commit()
    session.expunge(item)
    logger.info(f"Deleted item id={item_id}")
    return True


async def search_inventory_items(
    session: AsyncSession,
    organization_id: Optional[int],
    query: Optional[str] = None,
    status: Optional[InventoryStatus] = None,
) -> list[InventoryItem]:
    """Search items by text (case-insensitive name/description/location/platform).

    Args:
        session: Database session
        organization_id: Caller's organization
        query: Substring to look for; all visible items match when empty
        status: Optional status filter

    Returns:
        Matching items, newest first
    """
    stmt = _scoped(select(InventoryItem), InventoryItem, organization_id)
    if status is not None:
        stmt = stmt.where(InventoryItem.status == status)
    if query:
        pattern = f"%{query}%"
        stmt = stmt.where(
            or_(
                InventoryItem.name.ilike(pattern),
                InventoryItem.description.ilike(pattern),
                InventoryItem.bin_number.ilike(pattern),
                InventoryItem.rack_number.ilike(pattern),
                InventoryItem.platform.ilike(pattern),
            )
        )
    stmt = stmt.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===== Cycle Count Operations =====


@dataclass(frozen=True)
class CycleCountStats:
    """Progress of a cycle count, derived from its item rows on every read."""

    total_items: int = 0
    counted_items: int = 0
    items_with_variance: int = 0

    @property
    def progress(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.counted_items / self.total_items


async def get_cycle_count_stats(
    session: AsyncSession, cycle_count_ids: list[int]
) -> dict[int, CycleCountStats]:
    """Aggregate item rows into stats for each cycle count.

    Counts with no items are present in the result with all-zero stats.
    """
    stats = {cycle_count_id: CycleCountStats() for cycle_count_id in cycle_count_ids}
    if not cycle_count_ids:
        return stats

    result = await session.execute(
        select(
            CycleCountItem.cycle_count_id,
            func.count(CycleCountItem.id),
            func.count(CycleCountItem.counted_qty),
            func.count(case((CycleCountItem.variance != 0, 1))),
        )
        .where(CycleCountItem.cycle_count_id.in_(cycle_count_ids))
        .group_by(CycleCountItem.cycle_count_id)
    )
    for cycle_count_id, total, counted, with_variance in result.all():
        stats[cycle_count_id] = CycleCountStats(
            total_items=total, counted_items=counted, items_with_variance=with_variance
        )
    return stats


async def get_cycle_count(
    session: AsyncSession, organization_id: Optional[int], cycle_count_id: int
) -> Optional[CycleCount]:
    """Get a cycle count by ID, None if missing or outside the organization."""
    stmt = _scoped(select(CycleCount).where(CycleCount.id == cycle_count_id), CycleCount, organization_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _lock_cycle_count(
    session: AsyncSession, organization_id: Optional[int], cycle_count_id: int
) -> CycleCount:
    """Load a cycle count with a row lock held until the transaction ends.

    Recording and completion both take this lock, so a count can never be
    recorded against a cycle count that is being completed.

    Raises:
        NotFoundError: If the count is missing or not visible
    """
    stmt = _scoped(
        select(CycleCount).where(CycleCount.id == cycle_count_id).with_for_update(),
        CycleCount,
        organization_id,
    )
    result = await session.execute(stmt.execution_options(populate_existing=True))
    cycle_count = result.scalar_one_or_none()
    if cycle_count is None:
        raise NotFoundError("Cycle count not found")
    return cycle_count


async def list_cycle_counts(
    session: AsyncSession, organization_id: Optional[int]
) -> list[tuple[CycleCount, CycleCountStats]]:
    """List visible cycle counts, newest first, each paired with its stats."""
    stmt = _scoped(select(CycleCount), CycleCount, organization_id).order_by(
        CycleCount.created_at.desc(), CycleCount.id.desc()
    )
    result = await session.execute(stmt)
    cycle_counts = list(result.scalars().all())
    stats = await get_cycle_count_stats(session, [cc.id for cc in cycle_counts])
    return [(cc, stats[cc.id]) for cc in cycle_counts]


async def list_cycle_count_items(session: AsyncSession, cycle_count_id: int) -> list[CycleCountItem]:
    """List a cycle count's rows, uncounted first, then by inventory item name.

    Each row's ``inventory_item`` is loaded (None if the item was deleted).
    """
    result = await session.execute(
        select(CycleCountItem)
        .outerjoin(CycleCountItem.inventory_item)
        .options(contains_eager(CycleCountItem.inventory_item))
        .where(CycleCountItem.cycle_count_id == cycle_count_id)
        .order_by(
            CycleCountItem.counted_qty.is_not(None),
            InventoryItem.name,
            CycleCountItem.id,
        )
    )
    return list(result.unique().scalars().all())


async def start_cycle_count(
    session: AsyncSession,
    organization_id: Optional[int],
    name: str,
    notes: Optional[str] = None,
) -> tuple[CycleCount, CycleCountStats]:
    """Start a cycle count over every pending item in the organization.

    The snapshot read and all inserts happen in one transaction. Each row's
    ``expected_qty`` is the item's quantity at that moment. With no pending
    items the count is created empty.

    Args:
        session: Database session
        organization_id: Caller's organization
        name: Display name, must not be blank
        notes: Optional free-text notes

    Returns:
        The created cycle count and its (initial) stats

    Raises:
        ValidationError: If the name is blank
    """
    if not name or not name.strip():
        raise ValidationError("Cycle count name must not be empty")

    result = await session.execute(
        _scoped(
            select(InventoryItem.id, InventoryItem.quantity).where(
                InventoryItem.status == InventoryStatus.PENDING
            ),
            InventoryItem,
            organization_id,
        )
    )
    snapshot = result.all()

    cycle_count = CycleCount(
        organization_id=organization_id,
        name=name,
        notes=notes,
        status=CycleCountStatus.IN_PROGRESS,
    )
    session.add(cycle_count)
    await session.flush()

    session.add_all(
        CycleCountItem(
            cycle_count_id=cycle_count.id,
            inventory_item_id=item_id,
            expected_qty=quantity,
        )
        for item_id, quantity in snapshot
    )
    await session.commit()
    await session.refresh(cycle_count)
    logger.info(f"Created cycle count {cycle_count.id} with {len(snapshot)} items")
    return cycle_count, CycleCountStats(total_items=len(snapshot))


async def record_count(
    session: AsyncSession,
    organization_id: Optional[int],
    cycle_count_id: int,
    inventory_item_id: int,
    counted_qty: int,
    notes: Optional[str] = None,
) -> CycleCountItem:
    """Record the physical count for one item of an in-progress cycle count.

    Overwrites any earlier count for the item. Variance is measured against
    the snapshot's ``expected_qty``, never the live inventory quantity, and
    the inventory item itself is left untouched.

    Args:
        session: Database session
        organization_id: Caller's organization
        cycle_count_id: ID of the cycle count
        inventory_item_id: ID of the counted inventory item
        counted_qty: Quantity physically observed (>= 0)
        notes: Optional notes; replaces earlier notes

    Returns:
        The updated row with ``inventory_item`` loaded

    Raises:
        ValidationError: If counted_qty is negative or too large to store
        NotFoundError: If the count or the item's row does not exist
        StateConflictError: If the count is not in progress
    """
    if counted_qty < 0:
        raise ValidationError("Counted quantity must not be negative")
    if counted_qty > INT32_MAX:
        raise ValidationError(f"Counted quantity must not exceed {INT32_MAX}")

    cycle_count = await _lock_cycle_count(session, organization_id, cycle_count_id)
    if cycle_count.status is not CycleCountStatus.IN_PROGRESS:
        raise StateConflictError("Cycle count is not in progress")

    result = await session.execute(
        select(CycleCountItem).where(
            CycleCountItem.cycle_count_id == cycle_count_id,
            CycleCountItem.inventory_item_id == inventory_item_id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError("Item not found in this cycle count")

    variance = counted_qty - row.expected_qty
    row.counted_qty = counted_qty
    row.variance = variance
    row.notes = notes
    row.counted_at = datetime.now(timezone.utc)
    await session.commit()
    logger.info(
        f"Recorded count {counted_qty} for item {inventory_item_id} "
        f"in cycle count {cycle_count_id} (variance: {variance})"
    )

    result = await session.execute(
        select(CycleCountItem)
        .options(selectinload(CycleCountItem.inventory_item))
        .where(CycleCountItem.id == row.id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def complete_cycle_count(
    session: AsyncSession,
    organization_id: Optional[int],
    cycle_count_id: int,
    apply_changes: bool = True,
) -> tuple[CycleCount, CycleCountStats]:
    """Close an in-progress cycle count, optionally reconciling inventory.

    With ``apply_changes`` every counted row writes its counted quantity to
    the inventory item; uncounted rows and rows whose item was deleted are
    skipped. The quantity writes and the status change commit together.

    Args:
        session: Database session
        organization_id: Caller's organization
        cycle_count_id: ID of the cycle count
        apply_changes: Whether to write counted quantities to inventory

    Returns:
        The completed cycle count and its stats

    Raises:
        NotFoundError: If the count does not exist or is not visible
        StateConflictError: If the count is not in progress
    """
    cycle_count = await _lock_cycle_count(session, organization_id, cycle_count_id)
    if cycle_count.status is not CycleCountStatus.IN_PROGRESS:
        raise StateConflictError("Cycle count is not in progress")

    if apply_changes:
        result = await session.execute(
            select(CycleCountItem.inventory_item_id, CycleCountItem.counted_qty).where(
                CycleCountItem.cycle_count_id == cycle_count_id,
                CycleCountItem.counted_qty.is_not(None),
                CycleCountItem.inventory_item_id.is_not(None),
            )
        )
        counted = {item_id: qty for item_id, qty in result.all()}
        applied = 0
        if counted:
            items = await session.execute(select(InventoryItem).where(InventoryItem.id.in_(list(counted))))
            for item in items.scalars().all():
                item.quantity = counted[item.id]
                applied += 1
        logger.info(f"Applying {applied} quantity updates from cycle count {cycle_count_id}")

    cycle_count.status = CycleCountStatus.COMPLETED
    cycle_count.completed_at = datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(cycle_count)
    logger.info(f"Completed cycle count {cycle_count_id} (apply_changes={apply_changes})")

    stats = await get_cycle_count_stats(session, [cycle_count.id])
    return cycle_count, stats[cycle_count.id]


async def update_cycle_count(
    session: AsyncSession,
    organization_id: Optional[int],
    cycle_count_id: int,
    **changes: Any,
) -> tuple[CycleCount, CycleCountStats]:
    """Edit a cycle count's name, notes or status.

    A closed count is immutable. The only status move allowed here is
    ``in_progress`` -> ``cancelled``; completion has its own operation.

    Raises:
        NotFoundError: If the count does not exist or is not visible
        StateConflictError: If the count is closed or the status move is not allowed
        ValidationError: If the new name is blank
    """
    cycle_count = await _lock_cycle_count(session, organization_id, cycle_count_id)
    if cycle_count.status.is_terminal:
        raise StateConflictError(f"Cycle count is {cycle_count.status.value} and can no longer be edited")

    new_status = changes.get("status")
    if new_status is CycleCountStatus.COMPLETED:
        raise StateConflictError("Use the complete operation to close a cycle count")
    if "name" in changes and (changes["name"] is None or not changes["name"].strip()):
        raise ValidationError("Cycle count name must not be empty")

    for field, value in changes.items():
        setattr(cycle_count, field, value)

    await session.commit()
    await session.refresh(cycle_count)
    logger.info(f"Updated cycle count {cycle_count_id}")

    stats = await get_cycle_count_stats(session, [cycle_count.id])
    return cycle_count, stats[cycle_count.id]


async def delete_cycle_count(session: AsyncSession, organization_id: Optional[int], cycle_count_id: int) -> bool:
    """Hard-delete a cycle count; its item rows cascade.

    Returns:
        True if deleted, False if not found
    """
    cycle_count = await get_cycle_count(session, organization_id, cycle_count_id)
    if cycle_count is None:
        return False
    await session.execute(delete(CycleCountItem).where(CycleCountItem.cycle_count_id == cycle_count_id))
    await session.execute(delete(CycleCount).where(CycleCount.id == cycle_count_id))
    await session.commit()
    session.expunge(cycle_count)
    logger.info(f"Deleted cycle count {cycle_count_id}")
    return True


# ===== Prep Sheet Operations =====


async def create_prep_item(
    session: AsyncSession,
    organization_id: Optional[int],
    **fields: Any,
) -> PrepItem:
    """Create a prep item from column values."""
    item = PrepItem(organization_id=organization_id, **fields)
    session.add(item)
    await session.commit()
    await session.refresh(item)
    logger.info(f"Created prep item: {item.name} (id={item.id}, organization_id={organization_id})")
    return item


async def get_prep_item(
    session: AsyncSession, organization_id: Optional[int], prep_item_id: int
) -> Optional[PrepItem]:
    """Get a prep item by ID, None if missing or outside the organization."""
    stmt = _scoped(select(PrepItem).where(PrepItem.id == prep_item_id), PrepItem, organization_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_prep_items(session: AsyncSession, organization_id: Optional[int]) -> list[PrepItem]:
    """List active prep items ordered the way the prep sheet shows them."""
    stmt = _scoped(select(PrepItem).where(PrepItem.is_active.is_(True)), PrepItem, organization_id)
    stmt = stmt.order_by(PrepItem.category, PrepItem.sort_order, PrepItem.name)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_prep_item(
    session: AsyncSession,
    organization_id: Optional[int],
    prep_item_id: int,
    **changes: Any,
) -> Optional[PrepItem]:
    """Update a prep item. Returns None if not found."""
    item = await get_prep_item(session, organization_id, prep_item_id)
    if not item:
        return None
    for field, value in changes.items():
        setattr(item, field, value)
    await session.commit()
    await session.refresh(item)
    logger.info(f"Updated prep item {prep_item_id}")
    return item


async def delete_prep_item(session: AsyncSession, organization_id: Optional[int], prep_item_id: int) -> bool:
    """Delete a prep item and its log. Returns False if not found."""
    item = await get_prep_item(session, organization_id, prep_item_id)
    if not item:
        return False
    await session.execute(delete(PrepLog).where(PrepLog.prep_item_id == prep_item_id))
    await session.execute(delete(PrepItem).where(PrepItem.id == prep_item_id))
    await session.commit()
    session.expunge(item)
    logger.info(f"Deleted prep item {prep_item_id}")
    return True


async def log_prep(
    session: AsyncSession,
    organization_id: Optional[int],
    prep_item_id: int,
    quantity_prepped: float,
    prepped_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> PrepLog:
    """Append a prep log entry and raise the item's current level by the same amount.

    Both writes commit together. The increment is done in SQL so concurrent
    logs for one item do not lose updates.

    Raises:
        NotFoundError: If the prep item does not exist or is not visible
    """
    item = await get_prep_item(session, organization_id, prep_item_id)
    if not item:
        raise NotFoundError("Prep item not found")

    log = PrepLog(
        prep_item_id=prep_item_id,
        quantity_prepped=quantity_prepped,
        prepped_by=prepped_by,
        notes=notes,
    )
    session.add(log)
    item.current_level = PrepItem.current_level + quantity_prepped
    await session.commit()
    await session.refresh(log)
    await session.refresh(item)
    logger.info(f"Logged prep for item {prep_item_id}: +{quantity_prepped}")
    return log


async def list_prep_logs(session: AsyncSession, prep_item_id: int, limit: int = 50) -> list[PrepLog]:
    """Most recent prep logs for an item, newest first."""
    result = await session.execute(
        select(PrepLog)
        .where(PrepLog.prep_item_id == prep_item_id)
        .order_by(PrepLog.created_at.desc(), PrepLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def batch_update_prep_levels(
    session: AsyncSession,
    organization_id: Optional[int],
    updates: dict[int, float],
) -> int:
    """Set current levels for several prep items at once.

    Nothing is written unless every ID is visible to the caller.

    Args:
        session: Database session
        organization_id: Caller's organization
        updates: Mapping of prep item ID to new current level

    Returns:
        Number of items updated

    Raises:
        ValidationError: If any ID is missing or outside the organization
    """
    if not updates:
        return 0
    stmt = _scoped(select(PrepItem).where(PrepItem.id.in_(list(updates))), PrepItem, organization_id)
    result = await session.execute(stmt)
    items = list(result.scalars().all())
    if len(items) != len(updates):
        raise ValidationError("Some items not found or not accessible")

    for item in items:
        item.current_level = updates[item.id]
    await session.commit()
    logger.info(f"Updated current level of {len(items)} prep items")
    return len(items)


# ===== Vendor Operations =====


async def create_vendor(
    session: AsyncSession,
    organization_id: Optional[int],
    name: str,
    **fields: Any,
) -> Vendor:
    """Create a vendor.

    Args:
        session: Database session
        organization_id: Owning organization (None for the global view)
        name: Vendor name
        **fields: Optional contact columns (contact_name, email, phone, address, notes)

    Returns:
        The created vendor
    """
    vendor = Vendor(organization_id=organization_id, name=name, **fields)
    session.add(vendor)
    await session.commit()
    await session.refresh(vendor)
    logger.info(f"Created vendor: {vendor.name} (id={vendor.id}, organization_id={organization_id})")
    return vendor


async def get_vendor(session: AsyncSession, organization_id: Optional[int], vendor_id: int) -> Optional[Vendor]:
    """Get a vendor by ID, None if missing or outside the organization."""
    stmt = _scoped(select(Vendor).where(Vendor.id == vendor_id), Vendor, organization_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_vendors(session: AsyncSession, organization_id: Optional[int]) -> list[Vendor]:
    """List visible vendors ordered by name."""
    stmt = _scoped(select(Vendor), Vendor, organization_id).order_by(Vendor.name, Vendor.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_vendor(
    session: AsyncSession,
    organization_id: Optional[int],
    vendor_id: int,
    **changes: Any,
) -> Optional[Vendor]:
    """Update a vendor. Returns None if not found."""
    vendor = await get_vendor(session, organization_id, vendor_id)
    if not vendor:
        return None
    for field, value in changes.items():
        setattr(vendor, field, value)
    await session.commit()
    await session.refresh(vendor)
    logger.info(f"Updated vendor {vendor_id}")
    return vendor


async def delete_vendor(session: AsyncSession, organization_id: Optional[int], vendor_id: int) -> bool:
    """Delete a vendor with its product links and orders.

    Returns:
        True if deleted, False if not found
    """
    vendor = await get_vendor(session, organization_id, vendor_id)
    if not vendor:
        return False
    order_ids = select(PurchaseOrder.id).where(PurchaseOrder.vendor_id == vendor_id)
    await session.execute(delete(OrderItem).where(OrderItem.order_id.in_(order_ids)))
    await session.execute(delete(PurchaseOrder).where(PurchaseOrder.vendor_id == vendor_id))
    await session.execute(delete(VendorProduct).where(VendorProduct.vendor_id == vendor_id))
    await session.execute(delete(Vendor).where(Vendor.id == vendor_id))
    await session.commit()
    session.expunge(vendor)
    logger.info(f"Deleted vendor {vendor_id}")
    return True


async def _require_vendor(session: AsyncSession, organization_id: Optional[int], vendor_id: int) -> Vendor:
    vendor = await get_vendor(session, organization_id, vendor_id)
    if vendor is None:
        raise NotFoundError("Vendor not found")
    return vendor


async def _require_inventory_item(
    session: AsyncSession, organization_id: Optional[int], item_id: int
) -> InventoryItem:
    item = await get_inventory_item(session, organization_id, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    return item


def _vendor_products(vendor_id: int) -> Select[tuple[VendorProduct]]:
    return (
        select(VendorProduct)
        .join(VendorProduct.inventory_item)
        .options(contains_eager(VendorProduct.inventory_item))
        .where(VendorProduct.vendor_id == vendor_id)
        .order_by(InventoryItem.name, VendorProduct.id)
        .execution_options(populate_existing=True)
    )


async def list_vendor_products(
    session: AsyncSession, organization_id: Optional[int], vendor_id: int
) -> list[VendorProduct]:
    """List a vendor's linked inventory items, by item name.

    Raises:
        NotFoundError: If the vendor is missing or not visible
    """
    await _require_vendor(session, organization_id, vendor_id)
    result = await session.execute(_vendor_products(vendor_id))
    return list(result.scalars().all())


async def list_below_par_products(
    session: AsyncSession, organization_id: Optional[int], vendor_id: int
) -> list[VendorProduct]:
    """Linked items whose on-hand quantity is below their par level.

    Items without a par level are never below par.

    Raises:
        NotFoundError: If the vendor is missing or not visible
    """
    await _require_vendor(session, organization_id, vendor_id)
    result = await session.execute(
        _vendor_products(vendor_id).where(
            InventoryItem.par_level.is_not(None),
            InventoryItem.quantity < InventoryItem.par_level,
        )
    )
    return list(result.scalars().all())


async def link_vendor_product(
    session: AsyncSession,
    organization_id: Optional[int],
    vendor_id: int,
    inventory_item_id: int,
    vendor_sku: Optional[str] = None,
    unit_cost: Optional[float] = None,
    min_order_qty: Optional[int] = None,
) -> tuple[VendorProduct, bool]:
    """Link an inventory item to a vendor, or update the existing link.

    Args:
        session: Database session
        organization_id: Caller's organization
        vendor_id: ID of the vendor
        inventory_item_id: ID of the supplied inventory item
        vendor_sku: The vendor's code for the item
        unit_cost: The vendor's price per unit
        min_order_qty: Smallest quantity the vendor accepts

    Returns:
        The link (with ``inventory_item`` loaded) and whether it was created

    Raises:
        NotFoundError: If the vendor or the item is missing or not visible
    """
    await _require_vendor(session, organization_id, vendor_id)
    await _require_inventory_item(session, organization_id, inventory_item_id)

    result = await session.execute(
        select(VendorProduct).where(
            VendorProduct.vendor_id == vendor_id,
            VendorProduct.inventory_item_id == inventory_item_id,
        )
    )
    product = result.scalar_one_or_none()
    created = product is None
    if product is None:
        product = VendorProduct(vendor_id=vendor_id, inventory_item_id=inventory_item_id)
        session.add(product)
    product.vendor_sku = vendor_sku
    product.unit_cost = unit_cost
    product.min_order_qty = min_order_qty
    await session.commit()
    logger.info(
        f"{'Linked' if created else 'Updated link of'} item {inventory_item_id} to vendor {vendor_id}"
    )

    result = await session.execute(_vendor_products(vendor_id).where(VendorProduct.id == product.id))
    return result.scalar_one(), created


async def unlink_vendor_product(
    session: AsyncSession, organization_id: Optional[int], vendor_id: int, product_id: int
) -> bool:
    """Remove one of a vendor's product links. Returns False if not found."""
    if await get_vendor(session, organization_id, vendor_id) is None:
        return False
    result = await session.execute(
        delete(VendorProduct).where(VendorProduct.id == product_id, VendorProduct.vendor_id == vendor_id)
    )
    await session.commit()
    if not result.rowcount:
        return False
    logger.info(f"Unlinked product link {product_id} from vendor {vendor_id}")
    return True


# ===== Purchase Order Operations =====

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Build a readable order number such as ``PO-20260301-7KQ2ZD``."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"PO-{now:%Y%m%d}-{suffix}"


def _line_total(quantity: int, unit_cost: Optional[float]) -> Optional[float]:
    if unit_cost is None:
        return None
    return round(unit_cost * quantity, 2)


def _check_line_quantity(quantity: int) -> None:
    if quantity < 1 or quantity > INT32_MAX:
        raise ValidationError(f"Order quantity must be between 1 and {INT32_MAX}")


async def _refresh_order_total(session: AsyncSession, order: PurchaseOrder) -> None:
    """Recompute the order total from its priced lines (null when none is priced)."""
    await session.flush()
    result = await session.execute(
        select(func.sum(OrderItem.total_cost), func.count(OrderItem.total_cost)).where(
            OrderItem.order_id == order.id
        )
    )
    total, priced = result.one()
    order.total_amount = round(float(total), 2) if priced else None


def _orders() -> Select[tuple[PurchaseOrder]]:
    return (
        select(PurchaseOrder)
        .options(
            selectinload(PurchaseOrder.vendor),
            selectinload(PurchaseOrder.items).selectinload(OrderItem.inventory_item),
        )
        .execution_options(populate_existing=True)
    )


async def get_order(
    session: AsyncSession, organization_id: Optional[int], order_id: int
) -> Optional[PurchaseOrder]:
    """Get an order with its vendor and lines loaded, None if missing or not visible."""
    stmt = _scoped(_orders().where(PurchaseOrder.id == order_id), PurchaseOrder, organization_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_orders(session: AsyncSession, organization_id: Optional[int]) -> list[PurchaseOrder]:
    """List visible orders, newest first, with vendors and lines loaded."""
    stmt = _scoped(_orders(), PurchaseOrder, organization_id).order_by(
        PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _lock_order(session: AsyncSession, organization_id: Optional[int], order_id: int) -> PurchaseOrder:
    """Load an order with a row lock held until the transaction ends.

    Raises:
        NotFoundError: If the order is missing or not visible
    """
    stmt = _scoped(
        select(PurchaseOrder).where(PurchaseOrder.id == order_id).with_for_update(),
        PurchaseOrder,
        organization_id,
    )
    result = await session.execute(stmt.execution_options(populate_existing=True))
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _require_draft(order: PurchaseOrder) -> None:
    if order.status is not OrderStatus.DRAFT:
        raise StateConflictError(f"Order is {order.status.value}; only draft orders can be modified")


async def _reload_order(session: AsyncSession, order_id: int) -> PurchaseOrder:
    result = await session.execute(_orders().where(PurchaseOrder.id == order_id))
    return result.scalar_one()


async def create_order(
    session: AsyncSession,
    organization_id: Optional[int],
    vendor_id: int,
    notes: Optional[str] = None,
    items: Optional[list[dict[str, Any]]] = None,
) -> PurchaseOrder:
    """Create a draft order for a vendor, optionally with initial lines.

    Args:
        session: Database session
        organization_id: Caller's organization
        vendor_id: ID of the vendor being ordered from
        notes: Optional notes
        items: Lines as dicts with ``inventory_item_id``, ``quantity`` and
            optional ``unit_cost`` and ``notes``

    Returns:
        The created order with vendor and lines loaded

    Raises:
        NotFoundError: If the vendor or any line's item is missing or not visible
        ValidationError: If a line quantity is out of range
    """
    await _require_vendor(session, organization_id, vendor_id)
    lines = items or []
    for line in lines:
        _check_line_quantity(line["quantity"])
        await _require_inventory_item(session, organization_id, line["inventory_item_id"])

    order = PurchaseOrder(
        organization_id=organization_id,
        order_number=generate_order_number(),
        vendor_id=vendor_id,
        notes=notes,
        status=OrderStatus.DRAFT,
    )
    session.add(order)
    await session.flush()

    session.add_all(
        OrderItem(
            order_id=order.id,
            inventory_item_id=line["inventory_item_id"],
            quantity=line["quantity"],
            unit_cost=line.get("unit_cost"),
            total_cost=_line_total(line["quantity"], line.get("unit_cost")),
            notes=line.get("notes"),
        )
        for line in lines
    )
    await _refresh_order_total(session, order)
    await session.commit()
    logger.info(f"Created order {order.order_number} (id={order.id}) with {len(lines)} lines")
    return await _reload_order(session, order.id)


async def update_order(
    session: AsyncSession,
    organization_id: Optional[int],
    order_id: int,
    **changes: Any,
) -> PurchaseOrder:
    """Edit an order's notes, or cancel it.

    Received and cancelled orders are immutable. The only status move allowed
    here is to ``cancelled``; submitting and receiving have their own operations.

    Raises:
        NotFoundError: If the order is missing or not visible
        StateConflictError: If the order is closed or the status move is not allowed
    """
    order = await _lock_order(session, organization_id, order_id)
    if order.status in (OrderStatus.RECEIVED, OrderStatus.CANCELLED):
        raise StateConflictError(f"Order is {order.status.value} and can no longer be edited")

    new_status = changes.get("status")
    if new_status is not None and new_status not in (order.status, OrderStatus.CANCELLED):
        raise StateConflictError("Use the submit or receive operation to advance an order")

    for field, value in changes.items():
        setattr(order, field, value)
    await session.commit()
    logger.info(f"Updated order {order_id}")
    return await _reload_order(session, order_id)


async def _reload_order_line(session: AsyncSession, line_id: int) -> OrderItem:
    result = await session.execute(
        select(OrderItem)
        .options(selectinload(OrderItem.inventory_item))
        .where(OrderItem.id == line_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _get_order_line(session: AsyncSession, order_id: int, line_id: int) -> OrderItem:
    result = await session.execute(
        select(OrderItem).where(OrderItem.id == line_id, OrderItem.order_id == order_id)
    )
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFoundError("Order item not found")
    return line


async def add_order_item(
    session: AsyncSession,
    organization_id: Optional[int],
    order_id: int,
    inventory_item_id: int,
    quantity: int,
    unit_cost: Optional[float] = None,
    notes: Optional[str] = None,
) -> OrderItem:
    """Add a line to a draft order and recompute its total.

    Raises:
        NotFoundError: If the order or the item is missing or not visible
        StateConflictError: If the order is no longer a draft
        ValidationError: If the quantity is out of range
    """
    _check_line_quantity(quantity)
    order = await _lock_order(session, organization_id, order_id)
    _require_draft(order)
    await _require_inventory_item(session, organization_id, inventory_item_id)

    line = OrderItem(
        order_id=order.id,
        inventory_item_id=inventory_item_id,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=_line_total(quantity, unit_cost),
        notes=notes,
    )
    session.add(line)
    await _refresh_order_total(session, order)
    await session.commit()
    logger.info(f"Added item {inventory_item_id} x{quantity} to order {order_id}")
    return await _reload_order_line(session, line.id)


async def update_order_item(
    session: AsyncSession,
    organization_id: Optional[int],
    order_id: int,
    line_id: int,
    **changes: Any,
) -> OrderItem:
    """Change a draft order line's quantity, unit cost or notes.

    Raises:
        NotFoundError: If the order or the line is missing or not visible
        StateConflictError: If the order is no longer a draft
        ValidationError: If the quantity is out of range
    """
    order = await _lock_order(session, organization_id, order_id)
    _require_draft(order)
    line = await _get_order_line(session, order.id, line_id)
    if "quantity" in changes:
        _check_line_quantity(changes["quantity"])

    for field, value in changes.items():
        setattr(line, field, value)
    line.total_cost = _line_total(line.quantity, line.unit_cost)
    await _refresh_order_total(session, order)
    await session.commit()
    logger.info(f"Updated line {line_id} of order {order_id}")
    return await _reload_order_line(session, line_id)


async def remove_order_item(
    session: AsyncSession, organization_id: Optional[int], order_id: int, line_id: int
) -> None:
    """Remove a line from a draft order and recompute its total.

    Raises:
        NotFoundError: If the order or the line is missing or not visible
        StateConflictError: If the order is no longer a draft
    """
    order = await _lock_order(session, organization_id, order_id)
    _require_draft(order)
    line = await _get_order_line(session, order.id, line_id)
    await session.execute(delete(OrderItem).where(OrderItem.id == line.id))
    session.expunge(line)
    await _refresh_order_total(session, order)
    await session.commit()
    logger.info(f"Removed line {line_id} from order {order_id}")


async def submit_order(session: AsyncSession, organization_id: Optional[int], order_id: int) -> PurchaseOrder:
    """Send a draft order to the vendor; its lines are frozen from here on.

    Raises:
        NotFoundError: If the order is missing or not visible
        StateConflictError: If the order is not a draft
        ValidationError: If the order has no lines
    """
    order = await _lock_order(session, organization_id, order_id)
    if order.status is not OrderStatus.DRAFT:
        raise StateConflictError(f"Order is {order.status.value}; only draft orders can be submitted")

    result = await session.execute(select(func.count(OrderItem.id)).where(OrderItem.order_id == order.id))
    if result.scalar_one() == 0:
        raise ValidationError("Cannot submit an empty order")

    order.status = OrderStatus.SUBMITTED
    order.submitted_at = datetime.now(timezone.utc)
    await session.commit()
    logger.info(f"Submitted order {order.order_number} (id={order_id})")
    return await _reload_order(session, order_id)


async def receive_order(
    session: AsyncSession,
    organization_id: Optional[int],
    order_id: int,
    update_inventory: bool = True,
) -> PurchaseOrder:
    """Mark a submitted order received, optionally adding its lines to stock.

    With ``update_inventory`` every line's quantity is added to its inventory
    item's quantity. The increments and the status change commit together.

    Args:
        session: Database session
        organization_id: Caller's organization
        order_id: ID of the order
        update_inventory: Whether to add received quantities to inventory

    Returns:
        The received order with vendor and lines loaded

    Raises:
        NotFoundError: If the order is missing or not visible
        StateConflictError: If the order has not been submitted
        ValidationError: If an item's quantity would overflow
    """
    order = await _lock_order(session, organization_id, order_id)
    if order.status is not OrderStatus.SUBMITTED:
        raise StateConflictError("Order must be submitted before it can be received")

    restocked: list[InventoryItem] = []
    if update_inventory:
        result = await session.execute(
            select(OrderItem.inventory_item_id, OrderItem.quantity).where(OrderItem.order_id == order.id)
        )
        received: Counter[int] = Counter()
        for item_id, quantity in result.all():
            received[item_id] += quantity

        if received:
            items = await session.execute(
                select(InventoryItem)
                .where(InventoryItem.id.in_(list(received)))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            restocked = list(items.scalars().all())
        for item in restocked:
            if item.quantity + received[item.id] > INT32_MAX:
                raise ValidationError(f"Receiving would push the quantity of '{item.name}' past {INT32_MAX}")
        for item in restocked:
            item.quantity = InventoryItem.quantity + received[item.id]
        logger.info(f"Adding stock for {len(restocked)} items from order {order_id}")

    order.status = OrderStatus.RECEIVED
    order.received_at = datetime.now(timezone.utc)
    await session.commit()
    for item in restocked:
        await session.refresh(item)
    logger.info(f"Received order {order.order_number} (id={order_id}, update_inventory={update_inventory})")
    return await _reload_order(session, order_id)


async def delete_order(session: AsyncSession, organization_id: Optional[int], order_id: int) -> bool:
    """Delete an order and its lines. Received orders are kept.

    Returns:
        True if deleted, False if not found

    Raises:
        StateConflictError: If the order has been received
    """
    stmt = _scoped(select(PurchaseOrder).where(PurchaseOrder.id == order_id), PurchaseOrder, organization_id)
    result = await session.execute(stmt)
    order = result.scalar_one_or_none()
    if order is None:
        return False
    if order.status is OrderStatus.RECEIVED:
        raise StateConflictError("Cannot delete a received order")
    await session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
    await session.execute(delete(PurchaseOrder).where(PurchaseOrder.id == order_id))
    await session.commit()
    session.expunge(order)
    logger.info(f"Deleted order {order_id}")
    return True
