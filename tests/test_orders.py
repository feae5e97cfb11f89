"""Tests for purchase orders: drafting, submitting and receiving stock."""

import re

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.database import crud
from shelfwise.database.models import INT32_MAX, InventoryItem, OrderStatus, Organization, Vendor
from shelfwise.exceptions import NotFoundError, StateConflictError, ValidationError


@pytest_asyncio.fixture
async def vendor(db_session: AsyncSession, organization: Organization) -> Vendor:
    """A vendor in the test organization."""
    return await crud.create_vendor(db_session, organization.id, "Valley Foods")


async def _quantity(session: AsyncSession, organization_id: int, item_id: int) -> int:
    item = await crud.get_inventory_item(session, organization_id, item_id)
    assert item is not None
    await session.refresh(item)
    return item.quantity


class TestOrderCrud:
    """Store functions for purchase orders."""

    def test_order_number_format(self) -> None:
        assert re.fullmatch(r"PO-\d{8}-[A-Z0-9]{6}", crud.generate_order_number())

    @pytest.mark.asyncio
    async def test_create_computes_line_and_order_totals(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a, b = stocked_items[0], stocked_items[1]

        order = await crud.create_order(
            db_session,
            organization.id,
            vendor.id,
            notes="Weekly restock",
            items=[
                {"inventory_item_id": a.id, "quantity": 4, "unit_cost": 2.5},
                {"inventory_item_id": b.id, "quantity": 2},
            ],
        )

        assert order.status is OrderStatus.DRAFT
        assert order.vendor.name == "Valley Foods"
        assert [line.total_cost for line in order.items] == [10.0, None]
        assert order.total_amount == 10.0

    @pytest.mark.asyncio
    async def test_unpriced_order_has_no_total(
        self, db_session: AsyncSession, organization: Organization, vendor: Vendor
    ) -> None:
        order = await crud.create_order(db_session, organization.id, vendor.id)
        assert order.items == []
        assert order.total_amount is None

    @pytest.mark.asyncio
    async def test_create_for_unknown_vendor(self, db_session: AsyncSession, organization: Organization) -> None:
        with pytest.raises(NotFoundError, match="Vendor not found"):
            await crud.create_order(db_session, organization.id, 9999)

    @pytest.mark.asyncio
    async def test_line_changes_recompute_total(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        order = await crud.create_order(db_session, organization.id, vendor.id)

        line = await crud.add_order_item(db_session, organization.id, order.id, stocked_items[0].id, 3, unit_cost=1.5)
        assert line.total_cost == 4.5
        assert line.inventory_item.name == "A"

        await crud.add_order_item(db_session, organization.id, order.id, stocked_items[1].id, 1, unit_cost=2)
        order = await crud.get_order(db_session, organization.id, order.id)
        assert order is not None and order.total_amount == 6.5

        line = await crud.update_order_item(db_session, organization.id, order.id, line.id, quantity=10)
        assert line.total_cost == 15.0
        order = await crud.get_order(db_session, organization.id, order.id)
        assert order is not None and order.total_amount == 17.0

        await crud.remove_order_item(db_session, organization.id, order.id, line.id)
        order = await crud.get_order(db_session, organization.id, order.id)
        assert order is not None
        assert len(order.items) == 1
        assert order.total_amount == 2.0

    @pytest.mark.asyncio
    async def test_remove_unknown_line(
        self, db_session: AsyncSession, organization: Organization, vendor: Vendor
    ) -> None:
        order = await crud.create_order(db_session, organization.id, vendor.id)
        with pytest.raises(NotFoundError, match="Order item not found"):
            await crud.remove_order_item(db_session, organization.id, order.id, 9999)

    @pytest.mark.asyncio
    async def test_submit_empty_order_fails(
        self, db_session: AsyncSession, organization: Organization, vendor: Vendor
    ) -> None:
        order = await crud.create_order(db_session, organization.id, vendor.id)
        with pytest.raises(ValidationError, match="Cannot submit an empty order"):
            await crud.submit_order(db_session, organization.id, order.id)

    @pytest.mark.asyncio
    async def test_submitted_order_is_frozen(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        order = await crud.create_order(
            db_session, organization.id, vendor.id, items=[{"inventory_item_id": stocked_items[0].id, "quantity": 1}]
        )

        submitted = await crud.submit_order(db_session, organization.id, order.id)
        assert submitted.status is OrderStatus.SUBMITTED
        assert submitted.submitted_at is not None

        with pytest.raises(StateConflictError, match="only draft orders can be modified"):
            await crud.add_order_item(db_session, organization.id, order.id, stocked_items[1].id, 1)
        with pytest.raises(StateConflictError):
            await crud.submit_order(db_session, organization.id, order.id)

    @pytest.mark.asyncio
    async def test_receive_adds_quantities_to_stock(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a_id, b_id, c_id = stocked_items[0].id, stocked_items[1].id, stocked_items[2].id
        order = await crud.create_order(
            db_session,
            organization.id,
            vendor.id,
            items=[
                {"inventory_item_id": a_id, "quantity": 4},
                {"inventory_item_id": b_id, "quantity": 2},
                {"inventory_item_id": a_id, "quantity": 1},
            ],
        )
        await crud.submit_order(db_session, organization.id, order.id)

        received = await crud.receive_order(db_session, organization.id, order.id)

        assert received.status is OrderStatus.RECEIVED
        assert received.received_at is not None
        assert await _quantity(db_session, organization.id, a_id) == 15
        assert await _quantity(db_session, organization.id, b_id) == 7
        assert await _quantity(db_session, organization.id, c_id) == 0

    @pytest.mark.asyncio
    async def test_receive_without_updating_inventory(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a_id = stocked_items[0].id
        order = await crud.create_order(
            db_session, organization.id, vendor.id, items=[{"inventory_item_id": a_id, "quantity": 4}]
        )
        await crud.submit_order(db_session, organization.id, order.id)

        received = await crud.receive_order(db_session, organization.id, order.id, update_inventory=False)

        assert received.status is OrderStatus.RECEIVED
        assert await _quantity(db_session, organization.id, a_id) == 10

    @pytest.mark.asyncio
    async def test_receive_requires_submission(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a_id = stocked_items[0].id
        order = await crud.create_order(
            db_session, organization.id, vendor.id, items=[{"inventory_item_id": a_id, "quantity": 4}]
        )

        with pytest.raises(StateConflictError, match="must be submitted"):
            await crud.receive_order(db_session, organization.id, order.id)
        assert await _quantity(db_session, organization.id, a_id) == 10

    @pytest.mark.asyncio
    async def test_receive_refuses_quantity_overflow(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a_id, b_id = stocked_items[0].id, stocked_items[1].id
        await crud.update_inventory_item(db_session, organization.id, a_id, quantity=INT32_MAX - 1)
        order = await crud.create_order(
            db_session,
            organization.id,
            vendor.id,
            items=[{"inventory_item_id": b_id, "quantity": 1}, {"inventory_item_id": a_id, "quantity": 2}],
        )
        await crud.submit_order(db_session, organization.id, order.id)

        with pytest.raises(ValidationError, match="past"):
            await crud.receive_order(db_session, organization.id, order.id)
        await db_session.rollback()

        assert await _quantity(db_session, organization.id, a_id) == INT32_MAX - 1
        assert await _quantity(db_session, organization.id, b_id) == 5
        reloaded = await crud.get_order(db_session, organization.id, order.id)
        assert reloaded is not None and reloaded.status is OrderStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_cancel_then_frozen(
        self, db_session: AsyncSession, organization: Organization, vendor: Vendor
    ) -> None:
        order = await crud.create_order(db_session, organization.id, vendor.id)

        with pytest.raises(StateConflictError, match="submit or receive"):
            await crud.update_order(db_session, organization.id, order.id, status=OrderStatus.RECEIVED)

        cancelled = await crud.update_order(db_session, organization.id, order.id, status=OrderStatus.CANCELLED)
        assert cancelled.status is OrderStatus.CANCELLED

        with pytest.raises(StateConflictError, match="can no longer be edited"):
            await crud.update_order(db_session, organization.id, order.id, notes="too late")

    @pytest.mark.asyncio
    async def test_received_order_cannot_be_deleted(
        self,
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        order = await crud.create_order(
            db_session, organization.id, vendor.id, items=[{"inventory_item_id": stocked_items[0].id, "quantity": 1}]
        )
        draft = await crud.create_order(db_session, organization.id, vendor.id)
        await crud.submit_order(db_session, organization.id, order.id)
        await crud.receive_order(db_session, organization.id, order.id)

        with pytest.raises(StateConflictError, match="Cannot delete a received order"):
            await crud.delete_order(db_session, organization.id, order.id)
        assert await crud.delete_order(db_session, organization.id, draft.id) is True
        assert await crud.delete_order(db_session, organization.id, draft.id) is False

    @pytest.mark.asyncio
    async def test_other_organization_cannot_see_order(
        self,
        db_session: AsyncSession,
        organization: Organization,
        other_organization: Organization,
        vendor: Vendor,
    ) -> None:
        order = await crud.create_order(db_session, organization.id, vendor.id)

        assert await crud.get_order(db_session, other_organization.id, order.id) is None
        assert await crud.list_orders(db_session, other_organization.id) == []
        with pytest.raises(NotFoundError, match="Order not found"):
            await crud.submit_order(db_session, other_organization.id, order.id)


class TestOrderApi:
    """The /api/orders endpoints."""

    @pytest.mark.asyncio
    async def test_draft_submit_receive_flow(
        self,
        client: AsyncClient,
        user_headers: dict[str, str],
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a_id, b_id = stocked_items[0].id, stocked_items[1].id

        resp = await client.post(
            "/api/orders",
            json={"vendorId": vendor.id, "items": [{"inventoryItemId": a_id, "quantity": 6, "unitCost": 2}]},
            headers=user_headers,
        )
        assert resp.status_code == 201
        order = resp.json()
        assert order["status"] == "draft"
        assert order["orderNumber"].startswith("PO-")
        assert order["vendor"]["name"] == "Valley Foods"
        assert order["totalAmount"] == 12.0
        order_id = order["id"]

        resp = await client.post(
            f"/api/orders/{order_id}/items", json={"inventoryItemId": b_id, "quantity": 3}, headers=user_headers
        )
        assert resp.status_code == 201
        assert resp.json()["inventoryItem"]["name"] == "B"

        resp = await client.post(f"/api/orders/{order_id}/submit", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "submitted"

        resp = await client.post(f"/api/orders/{order_id}/receive", json={"updateInventory": True}, headers=user_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "received"
        assert resp.json()["receivedAt"] is not None

        resp = await client.get(f"/api/inventory/{a_id}", headers=user_headers)
        assert resp.json()["quantity"] == 16
        resp = await client.get(f"/api/inventory/{b_id}", headers=user_headers)
        assert resp.json()["quantity"] == 8

        resp = await client.get("/api/orders", headers=user_headers)
        assert [o["id"] for o in resp.json()["orders"]] == [order_id]

    @pytest.mark.asyncio
    async def test_receive_draft_is_400(
        self,
        client: AsyncClient,
        user_headers: dict[str, str],
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        resp = await client.post(
            "/api/orders",
            json={"vendorId": vendor.id, "items": [{"inventoryItemId": stocked_items[0].id, "quantity": 1}]},
            headers=user_headers,
        )
        order_id = resp.json()["id"]

        resp = await client.post(f"/api/orders/{order_id}/receive", headers=user_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Order must be submitted before it can be received"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, True, "3", 2**31])
    async def test_line_quantity_must_be_a_positive_int32(
        self,
        client: AsyncClient,
        user_headers: dict[str, str],
        vendor: Vendor,
        stocked_items: list[InventoryItem],
        quantity: object,
    ) -> None:
        resp = await client.post(
            "/api/orders",
            json={"vendorId": vendor.id, "items": [{"inventoryItemId": stocked_items[0].id, "quantity": quantity}]},
            headers=user_headers,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_below_par(
        self,
        client: AsyncClient,
        user_headers: dict[str, str],
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        a_id = stocked_items[0].id
        await crud.update_inventory_item(db_session, organization.id, a_id, par_level=25)
        await crud.link_vendor_product(db_session, organization.id, vendor.id, a_id, unit_cost=3)

        resp = await client.get(f"/api/orders/below-par/{vendor.id}", headers=user_headers)

        assert resp.status_code == 200
        [entry] = resp.json()["items"]
        assert entry["inventoryItem"]["id"] == a_id
        assert entry["currentQty"] == 10
        assert entry["parLevel"] == 25
        assert entry["orderQty"] == 15
        assert entry["vendorProduct"]["unitCost"] == 3

    @pytest.mark.asyncio
    async def test_delete_received_is_400(
        self,
        client: AsyncClient,
        user_headers: dict[str, str],
        db_session: AsyncSession,
        organization: Organization,
        vendor: Vendor,
        stocked_items: list[InventoryItem],
    ) -> None:
        order = await crud.create_order(
            db_session, organization.id, vendor.id, items=[{"inventory_item_id": stocked_items[0].id, "quantity": 1}]
        )
        await crud.submit_order(db_session, organization.id, order.id)
        await crud.receive_order(db_session, organization.id, order.id)

        resp = await client.delete(f"/api/orders/{order.id}", headers=user_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot delete a received order"

    @pytest.mark.asyncio
    async def test_missing_order_is_404(self, client: AsyncClient, user_headers: dict[str, str]) -> None:
        resp = await client.get("/api/orders/9999", headers=user_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Order not found"

        resp = await client.post("/api/orders/9999/submit", headers=user_headers)
        assert resp.status_code == 404
