"""
Tests for the vendor catalog store.
"""
import asyncio
from decimal import Decimal

from bazaar.application.catalog import VendorCatalog
from bazaar.domain import ShopEvent, VendorItem
from bazaar.infrastructure.storage import InMemoryKeyValueStore


class RecordingChannel:
    def __init__(self):
        self.sent = []

    async def emit(self, message):
        self.sent.append(message)

    def subscribe(self, handler):
        pass


class BrokenStore:
    async def get(self, key, default=None):
        raise OSError("disk gone")

    async def set(self, key, value):
        raise OSError("disk gone")


def sword(quantity=3):
    return VendorItem(id="sword", name="Sword", price=Decimal("30"), quantity=quantity, uuid="uuid-sword")


def make_catalog():
    channel = RecordingChannel()
    return VendorCatalog(InMemoryKeyValueStore(), channel), channel


class TestVendorCrud:
    def test_create_and_read_back(self):
        catalog, channel = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword()])
            return vendor, await catalog.get_vendor(vendor.id)

        created, loaded = asyncio.run(scenario())
        assert loaded.name == "Smithy"
        assert loaded.items[0].price == Decimal("30")
        assert loaded.items[0].quantity == 3
        assert channel.sent[-1] == {"type": ShopEvent.VENDOR_UPDATED.value, "vendorId": created.id}

    def test_delete_emits_event(self):
        catalog, channel = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy")
            deleted = await catalog.delete_vendor(vendor.id)
            return vendor, deleted, await catalog.get_vendors()

        vendor, deleted, vendors = asyncio.run(scenario())
        assert deleted
        assert vendors == {}
        assert channel.sent[-1] == {"type": ShopEvent.VENDOR_DELETED.value, "vendorId": vendor.id}

    def test_delete_unknown_vendor(self):
        catalog, _ = make_catalog()
        assert not asyncio.run(catalog.delete_vendor("missing"))

    def test_deactivate(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy")
            await catalog.set_vendor_active(vendor.id, False)
            return await catalog.get_vendor(vendor.id)

        assert not asyncio.run(scenario()).active

    def test_store_failures_never_raise(self):
        catalog = VendorCatalog(BrokenStore())

        async def scenario():
            return await catalog.get_vendors(), await catalog.create_vendor("Smithy")

        vendors, created = asyncio.run(scenario())
        assert vendors == {}
        assert created is None

    def test_find_by_item_uuid(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword()])
            return vendor, await catalog.find_vendor_by_item_uuid("uuid-sword")

        vendor, (found, item) = asyncio.run(scenario())
        assert found.id == vendor.id
        assert item.id == "sword"

    def test_malformed_record_is_skipped_and_kept(self):
        store = InMemoryKeyValueStore({
            "vendors": {
                "a": {"id": "a", "name": "Smithy", "items": []},
                "b": {"id": "b", "name": "Tailor", "items": [{"id": "x", "name": "Hat", "quantity": "lots"}]},
            }
        })
        catalog = VendorCatalog(store)

        async def scenario():
            listed = await catalog.get_vendors()
            created = await catalog.create_vendor("Cobbler")
            return listed, created, await store.get("vendors")

        listed, created, stored = asyncio.run(scenario())
        assert list(listed) == ["a"]
        assert created is not None
        assert set(stored) == {"a", "b", created.id}
        assert stored["b"]["items"][0]["quantity"] == "lots"

    def test_writes_abort_when_the_vendor_map_is_unreadable(self):
        store = InMemoryKeyValueStore({"vendors": ["not", "a", "mapping"]})
        catalog = VendorCatalog(store)

        async def scenario():
            return await catalog.create_vendor("Cobbler"), await store.get("vendors")

        created, stored = asyncio.run(scenario())
        assert created is None
        assert stored == ["not", "a", "mapping"]


class TestVendorItems:
    def test_add_item_rejects_duplicates(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword()])
            return await catalog.add_item_to_vendor(vendor.id, sword())

        assert asyncio.run(scenario()) is None

    def test_add_item_generates_id(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy")
            item = VendorItem(id="", name="Rope", price=Decimal("1"))
            return await catalog.add_item_to_vendor(vendor.id, item)

        added = asyncio.run(scenario())
        assert added is not None
        assert added.id

    def test_update_and_remove_item(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword()])
            await catalog.update_vendor_item(vendor.id, "sword", price=Decimal("25"))
            priced = (await catalog.get_vendor(vendor.id)).find_item("sword").price
            await catalog.remove_item_from_vendor(vendor.id, "sword")
            return priced, (await catalog.get_vendor(vendor.id)).items

        price, items = asyncio.run(scenario())
        assert price == Decimal("25")
        assert items == []

    def test_invalid_item_changes_are_rejected(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword()])
            outcomes = [
                await catalog.update_vendor_item(vendor.id, "sword", quantity="5"),
                await catalog.update_vendor_item(vendor.id, "sword", quantity=-1),
                await catalog.update_vendor_item(vendor.id, "sword", price="cheap"),
                await catalog.update_vendor_item(vendor.id, "sword", name="Blade", price=Decimal("-2")),
                await catalog.update_vendor_item(vendor.id, "sword", id="axe"),
                await catalog.update_vendor_item(vendor.id, "sword", colour="red"),
            ]
            return outcomes, (await catalog.get_vendor(vendor.id)).find_item("sword")

        outcomes, item = asyncio.run(scenario())
        assert outcomes == [False] * 6
        assert item.name == "Sword"
        assert item.quantity == 3
        assert item.price == Decimal("30")

    def test_price_strings_are_normalized(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword()])
            updated = await catalog.update_vendor_item(vendor.id, "sword", price="12.5", quantity=None)
            return updated, (await catalog.get_vendor(vendor.id)).find_item("sword")

        updated, item = asyncio.run(scenario())
        assert updated
        assert item.price == Decimal("12.5")
        assert item.is_unlimited


class TestStockUpdates:
    def test_decrement(self):
        catalog, channel = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword(3)])
            assert await catalog.update_item_quantity_in_vendor(vendor.id, "sword", -2)
            return vendor, (await catalog.get_vendor(vendor.id)).find_item("sword")

        vendor, item = asyncio.run(scenario())
        assert item.quantity == 1
        assert channel.sent[-1] == {
            "type": ShopEvent.ITEM_PURCHASED.value,
            "vendorId": vendor.id,
            "itemId": "sword",
        }

    def test_reaching_zero_removes_item(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword(2)])
            await catalog.update_item_quantity_in_vendor(vendor.id, "sword", -2)
            return (await catalog.get_vendor(vendor.id)).items

        assert asyncio.run(scenario()) == []

    def test_overdraw_clamps_and_removes(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword(2)])
            await catalog.update_item_quantity_in_vendor(vendor.id, "sword", -5)
            return (await catalog.get_vendor(vendor.id)).items

        assert asyncio.run(scenario()) == []

    def test_unlimited_stock_is_untouched(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy", items=[sword(None)])
            await catalog.update_item_quantity_in_vendor(vendor.id, "sword", -10)
            return (await catalog.get_vendor(vendor.id)).find_item("sword")

        item = asyncio.run(scenario())
        assert item is not None
        assert item.is_unlimited

    def test_unknown_item(self):
        catalog, _ = make_catalog()

        async def scenario():
            vendor = await catalog.create_vendor("Smithy")
            return await catalog.update_item_quantity_in_vendor(vendor.id, "nothing", -1)

        assert not asyncio.run(scenario())
