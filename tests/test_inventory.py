"""Tests for inventory items, at the store layer and over HTTP."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.database import crud
from shelfwise.database.models import InventoryItem, InventoryStatus, Organization


class TestInventoryCrud:
    """Store functions for inventory items."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, db_session: AsyncSession, organization: Organization) -> None:
        item = await crud.create_inventory_item(db_session, organization.id, "Desk fan")

        assert item.id is not None
        assert item.organization_id == organization.id
        assert item.quantity == 1
        assert item.status is InventoryStatus.PENDING
        assert item.image_url == ""
        assert item.sold_at is None
        assert item.created_at is not None

    @pytest.mark.asyncio
    async def test_create_sold_stamps_sold_at(self, db_session: AsyncSession, organization: Organization) -> None:
        item = await crud.create_inventory_item(db_session, organization.id, "Radio", status=InventoryStatus.SOLD)
        assert item.sold_at is not None

    @pytest.mark.asyncio
    async def test_stats_count_every_status(
        self, db_session: AsyncSession, organization: Organization, stocked_items: list[InventoryItem]
    ) -> None:
        stats = await crud.get_inventory_stats(db_session, organization.id)
        assert stats == {"total": 4, "pending": 3, "completed": 0, "sold": 1}

    @pytest.mark.asyncio
    async def test_list_filters_by_status(
        self, db_session: AsyncSession, organization: Organization, stocked_items: list[InventoryItem]
    ) -> None:
        sold = await crud.list_inventory_items(db_session, organization.id, InventoryStatus.SOLD)
        assert [item.name for item in sold] == ["Sold lamp"]

    @pytest.mark.asyncio
    async def test_update_to_sold_stamps_once(
        self, db_session: AsyncSession, organization: Organization, stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[0].id

        item = await crud.update_inventory_item(
            db_session, organization.id, item_id, status=InventoryStatus.SOLD, sold_price=12.5
        )
        assert item is not None
        first_stamp = item.sold_at
        assert first_stamp is not None
        assert item.sold_price == 12.5

        item = await crud.update_inventory_item(db_session, organization.id, item_id, status=InventoryStatus.SOLD)
        assert item is not None
        assert item.sold_at == first_stamp

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, db_session: AsyncSession, organization: Organization) -> None:
        assert await crud.update_inventory_item(db_session, organization.id, 9999, name="x") is None

    @pytest.mark.asyncio
    async def test_search_matches_locations_case_insensitively(
        self, db_session: AsyncSession, organization: Organization
    ) -> None:
        await crud.create_inventory_item(db_session, organization.id, "Lamp", bin_number="BIN-7")
        await crud.create_inventory_item(db_session, organization.id, "Chair", platform="ebay")
        await crud.create_inventory_item(db_session, organization.id, "Table", description="oak lamp base")

        by_bin = await crud.search_inventory_items(db_session, organization.id, "bin-7")
        assert [item.name for item in by_bin] == ["Lamp"]

        lamps = await crud.search_inventory_items(db_session, organization.id, "LAMP")
        assert {item.name for item in lamps} == {"Lamp", "Table"}

        sold = await crud.search_inventory_items(db_session, organization.id, "lamp", InventoryStatus.SOLD)
        assert sold == []

    @pytest.mark.asyncio
    async def test_delete(
        self, db_session: AsyncSession, organization: Organization, stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[0].id
        assert await crud.delete_inventory_item(db_session, organization.id, item_id) is True
        assert await crud.get_inventory_item(db_session, organization.id, item_id) is None
        assert await crud.delete_inventory_item(db_session, organization.id, item_id) is False

    @pytest.mark.asyncio
    async def test_other_organization_cannot_see_items(
        self,
        db_session: AsyncSession,
        other_organization: Organization,
        stocked_items: list[InventoryItem],
    ) -> None:
        item_id = stocked_items[0].id
        assert await crud.get_inventory_item(db_session, other_organization.id, item_id) is None
        assert await crud.list_inventory_items(db_session, other_organization.id) == []
        assert await crud.delete_inventory_item(db_session, other_organization.id, item_id) is False

    @pytest.mark.asyncio
    async def test_global_view_sees_every_organization(
        self, db_session: AsyncSession, stocked_items: list[InventoryItem]
    ) -> None:
        items = await crud.list_inventory_items(db_session, None)
        assert len(items) == len(stocked_items)


class TestInventoryApi:
    """The /api/inventory endpoints."""

    @pytest.mark.asyncio
    async def test_list_includes_stats(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        resp = await client.get("/api/inventory", headers=user_headers)

        assert resp.status_code == 200
        data = resp.json()
        assert len(data["items"]) == 4
        assert data["stats"]["total"] == 4
        assert data["stats"]["sold"] == 1

    @pytest.mark.asyncio
    async def test_create_accepts_camel_case(self, client: AsyncClient, user_headers: dict[str, str]) -> None:
        resp = await client.post(
            "/api/inventory",
            json={"name": "Monitor", "binNumber": "B1", "rackNumber": "R2", "quantity": 3, "parLevel": 2},
            headers=user_headers,
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["binNumber"] == "B1"
        assert data["rackNumber"] == "R2"
        assert data["quantity"] == 3
        assert data["parLevel"] == 2
        assert data["status"] == "pending"

    @pytest.mark.asyncio
    async def test_create_rejects_negative_quantity(self, client: AsyncClient, user_headers: dict[str, str]) -> None:
        resp = await client.post("/api/inventory", json={"name": "Bad", "quantity": -1}, headers=user_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [True, "7", 2**31])
    async def test_create_requires_json_integer_quantity_in_range(
        self, client: AsyncClient, user_headers: dict[str, str], quantity: object
    ) -> None:
        resp = await client.post("/api/inventory", json={"name": "Bad", "quantity": quantity}, headers=user_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [True, "7", 2**31])
    async def test_patch_requires_json_integer_quantity_in_range(
        self,
        client: AsyncClient,
        user_headers: dict[str, str],
        stocked_items: list[InventoryItem],
        quantity: object,
    ) -> None:
        item_id = stocked_items[0].id

        resp = await client.patch(f"/api/inventory/{item_id}", json={"quantity": quantity}, headers=user_headers)

        assert resp.status_code == 422
        resp = await client.get(f"/api/inventory/{item_id}", headers=user_headers)
        assert resp.json()["quantity"] == 10

    @pytest.mark.asyncio
    async def test_create_rejects_negative_cost(self, client: AsyncClient, user_headers: dict[str, str]) -> None:
        resp = await client.post("/api/inventory", json={"name": "Bad", "cost": -0.01}, headers=user_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_patch_rejects_negative_sold_price(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[0].id
        resp = await client.patch(f"/api/inventory/{item_id}", json={"soldPrice": -5}, headers=user_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_zero_cost_accepted(self, client: AsyncClient, user_headers: dict[str, str]) -> None:
        resp = await client.post(
            "/api/inventory", json={"name": "Freebie", "cost": 0}, headers=user_headers
        )
        assert resp.status_code == 201
        assert resp.json()["cost"] == 0

    @pytest.mark.asyncio
    async def test_patch_only_sent_fields(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[0].id

        resp = await client.patch(f"/api/inventory/{item_id}", json={"quantity": 4}, headers=user_headers)

        assert resp.status_code == 200
        assert resp.json()["quantity"] == 4
        assert resp.json()["name"] == "A"

    @pytest.mark.asyncio
    async def test_patch_rejects_null_for_required_field(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[0].id
        resp = await client.patch(f"/api/inventory/{item_id}", json={"name": None}, headers=user_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_patch_clears_nullable_field(
        self, client: AsyncClient, user_headers: dict[str, str], organization: Organization, db_session: AsyncSession
    ) -> None:
        item = await crud.create_inventory_item(db_session, organization.id, "Vase", description="blue")

        resp = await client.patch(f"/api/inventory/{item.id}", json={"description": None}, headers=user_headers)

        assert resp.status_code == 200
        assert resp.json()["description"] is None

    @pytest.mark.asyncio
    async def test_mark_sold_over_http(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[1].id

        resp = await client.patch(
            f"/api/inventory/{item_id}", json={"status": "sold", "soldPrice": 20}, headers=user_headers
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "sold"
        assert resp.json()["soldAt"] is not None
        assert resp.json()["soldPrice"] == 20

    @pytest.mark.asyncio
    async def test_search(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        resp = await client.post("/api/inventory/search", json={"query": "lamp"}, headers=user_headers)

        assert resp.status_code == 200
        assert [item["name"] for item in resp.json()["items"]] == ["Sold lamp"]

    @pytest.mark.asyncio
    async def test_missing_item_is_404(self, client: AsyncClient, user_headers: dict[str, str]) -> None:
        resp = await client.get("/api/inventory/9999", headers=user_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Item not found"

        resp = await client.patch("/api/inventory/9999", json={"quantity": 1}, headers=user_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(
        self, client: AsyncClient, user_headers: dict[str, str], stocked_items: list[InventoryItem]
    ) -> None:
        item_id = stocked_items[2].id

        resp = await client.delete(f"/api/inventory/{item_id}", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Item deleted successfully"}

        resp = await client.get(f"/api/inventory/{item_id}", headers=user_headers)
        assert resp.status_code == 404
