"""SQLAlchemy database models."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Largest value an Integer column holds on every supported backend
INT32_MAX = 2**31 - 1

# Numeric(12, 2) money columns hold amounts strictly below this
MONEY_LIMIT = 10**10


class InventoryStatus(str, enum.Enum):
    """Lifecycle status of a stocked item. Only pending items are counted."""

    PENDING = "pending"
    COMPLETED = "completed"
    SOLD = "sold"


class CycleCountStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not CycleCountStatus.IN_PROGRESS


class MemberRole(str, enum.Enum):
    OWNER = "owner"
    MEMBER = "member"


class PrepItemType(str, enum.Enum):
    INGREDIENT = "ingredient"
    PREPPED = "prepped"


class OrderStatus(str, enum.Enum):
    """Purchase order lifecycle: draft -> submitted -> received, or cancelled."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PrepUnit(str, enum.Enum):
    """Units a prep sheet can track levels in."""

    EACH = "each"
    PINT = "pint"
    QUART = "quart"
    GALLON = "gallon"
    PAN = "pan"
    HALF_PAN = "half_pan"
    THIRD_PAN = "third_pan"
    SIXTH_PAN = "sixth_pan"
    LB = "lb"
    OZ = "oz"
    KG = "kg"
    G = "g"
    CUP = "cup"
    TBSP = "tbsp"
    TSP = "tsp"
    DOZEN = "dozen"
    CASE = "case"
    BAG = "bag"
    BOX = "box"
    BOTTLE = "bottle"
    BUNCH = "bunch"
    HEAD = "head"
    SLICE = "slice"
    PORTION = "portion"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Store an enum as its string value in a plain VARCHAR column."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class User(Base):
    """Model for user accounts."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class Organization(Base):
    """Model for organizations (the tenant boundary for all stock data)."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name='{self.name}')>"


class OrganizationMember(Base):
    """Model for organization membership (many-to-many users ↔ organizations)."""

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[MemberRole] = mapped_column(
        _enum_column(MemberRole, "member_role"), nullable=False, default=MemberRole.MEMBER
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    organization = relationship("Organization", back_populates="members")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<OrganizationMember(organization_id={self.organization_id}, user_id={self.user_id})>"


class InventoryItem(Base):
    """Model for stocked items.

    ``quantity`` is the on-hand count. Direct edits and cycle-count completion
    write it; recording a count never does.
    """

    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[str] = mapped_column(String, nullable=False, default="")
    bin_number: Mapped[str] = mapped_column(String, nullable=False, default="")
    rack_number: Mapped[str] = mapped_column(String, nullable=False, default="")
    platform: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    status: Mapped[InventoryStatus] = mapped_column(
        _enum_column(InventoryStatus, "inventory_status"),
        nullable=False,
        default=InventoryStatus.PENDING,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    par_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cost: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    sold_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sold_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<InventoryItem(id={self.id}, name='{self.name}', quantity={self.quantity})>"


class CycleCount(Base):
    """Model for a physical count of all pending items at one point in time."""

    __tablename__ = "cycle_counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[CycleCountStatus] = mapped_column(
        _enum_column(CycleCountStatus, "cycle_count_status"),
        nullable=False,
        default=CycleCountStatus.IN_PROGRESS,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    if TYPE_CHECKING:
        items: Mapped[list["CycleCountItem"]]
    else:
        items = relationship(
            "CycleCountItem",
            back_populates="cycle_count",
            cascade="all, delete-orphan",
            passive_deletes=True,
        )

    def __repr__(self) -> str:
        return f"<CycleCount(id={self.id}, name='{self.name}', status='{self.status.value}')>"


class CycleCountItem(Base):
    """Model for one item's expected and counted quantity within a cycle count.

    ``variance`` is always ``counted_qty - expected_qty`` and is null exactly
    when ``counted_qty`` is null. ``expected_qty`` never changes after the
    snapshot is taken.
    """

    __tablename__ = "cycle_count_items"
    __table_args__ = (
        UniqueConstraint("cycle_count_id", "inventory_item_id", name="uq_cycle_count_item"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    cycle_count_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cycle_counts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Rows outlive the inventory item they snapshot
    inventory_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True, index=True
    )
    expected_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    counted_qty: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    variance: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    if TYPE_CHECKING:
        cycle_count: Mapped["CycleCount"]
        inventory_item: Mapped[Optional["InventoryItem"]]
    else:
        cycle_count = relationship("CycleCount", back_populates="items")
        inventory_item = relationship("InventoryItem")

    def __repr__(self) -> str:
        return (
            f"<CycleCountItem(id={self.id}, inventory_item_id={self.inventory_item_id}, "
            f"expected_qty={self.expected_qty}, counted_qty={self.counted_qty})>"
        )


class PrepItem(Base):
    """Model for restaurant prep sheet items tracked against a par level."""

    __tablename__ = "prep_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, index=True)
    item_type: Mapped[PrepItemType] = mapped_column(
        _enum_column(PrepItemType, "prep_item_type"),
        nullable=False,
        default=PrepItemType.INGREDIENT,
    )
    par_level: Mapped[float] = mapped_column(Float, nullable=False)
    current_level: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit: Mapped[PrepUnit] = mapped_column(_enum_column(PrepUnit, "prep_unit"), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    logs = relationship(
        "PrepLog",
        back_populates="prep_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PrepLog.created_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<PrepItem(id={self.id}, name='{self.name}', current_level={self.current_level})>"


class PrepLog(Base):
    """Append-only record of a completed prep task."""

    __tablename__ = "prep_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    prep_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prep_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity_prepped: Mapped[float] = mapped_column(Float, nullable=False)
    prepped_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )

    # Relationships
    prep_item = relationship("PrepItem", back_populates="logs")

    def __repr__(self) -> str:
        return f"<PrepLog(id={self.id}, prep_item_id={self.prep_item_id}, quantity_prepped={self.quantity_prepped})>"


class Vendor(Base):
    """Model for a supplier the organization orders stock from."""

    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id}, name='{self.name}')>"


class VendorProduct(Base):
    """Model linking an inventory item to a vendor that supplies it."""

    __tablename__ = "vendor_products"
    __table_args__ = (
        UniqueConstraint("vendor_id", "inventory_item_id", name="uq_vendor_product"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inventory_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vendor_sku: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    unit_cost: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    min_order_qty: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    if TYPE_CHECKING:
        inventory_item: Mapped["InventoryItem"]
    else:
        inventory_item = relationship("InventoryItem")

    def __repr__(self) -> str:
        return f"<VendorProduct(vendor_id={self.vendor_id}, inventory_item_id={self.inventory_item_id})>"


class PurchaseOrder(Base):
    """Model for an order placed with a vendor.

    ``total_amount`` is the sum of the line totals that have a unit cost, or
    null when no line has one. Only draft orders can have lines changed.
    """

    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    order_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[OrderStatus] = mapped_column(
        _enum_column(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.DRAFT,
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    total_amount: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    if TYPE_CHECKING:
        vendor: Mapped["Vendor"]
        items: Mapped[list["OrderItem"]]
    else:
        vendor = relationship("Vendor")
        items = relationship(
            "OrderItem",
            back_populates="order",
            cascade="all, delete-orphan",
            passive_deletes=True,
            order_by="OrderItem.id",
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrder(id={self.id}, order_number='{self.order_number}', status='{self.status.value}')>"


class OrderItem(Base):
    """Model for one line of a purchase order."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inventory_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    total_cost: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    if TYPE_CHECKING:
        order: Mapped["PurchaseOrder"]
        inventory_item: Mapped["InventoryItem"]
    else:
        order = relationship("PurchaseOrder", back_populates="items")
        inventory_item = relationship("InventoryItem")

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, quantity={self.quantity})>"
