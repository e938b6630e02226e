"""
Application Layer: Vendor Catalog
CRUD over the persisted vendor map. Failures return False/None, never raise.
"""
import uuid as uuid_lib
from typing import Any, Dict, Optional, Tuple

import structlog

from bazaar.application.ports import IKeyValueStore, IMessageChannel
from bazaar.domain import ShopEvent, Vendor, VendorId, VendorItem, to_decimal

logger = structlog.get_logger()


def new_id() -> str:
    return uuid_lib.uuid4().hex[:16]


_INVALID = object()
_TEXT_FIELDS = ("name", "uuid", "image")


def _check_item_field(key: str, value: Any) -> Any:
    """Normalized value for an editable stock line field, or _INVALID"""
    if key in _TEXT_FIELDS:
        return value if isinstance(value, str) else _INVALID
    if key == "quantity":
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return _INVALID
        return value
    if key in ("price", "weight"):
        amount = to_decimal(value, default=None)  # type: ignore[arg-type]
        if amount is None or amount < 0:
            return _INVALID
        return amount
    return _INVALID


class VendorCatalog:
    """Vendor records keyed by vendor id, stored under a single settings key"""

    VENDORS_KEY = "vendors"

    def __init__(self, store: IKeyValueStore, channel: Optional[IMessageChannel] = None):
        self.store = store
        self.channel = channel

    async def _emit(self, event: ShopEvent, **payload: Any) -> None:
        if self.channel is None:
            return
        try:
            await self.channel.emit({"type": event.value, **payload})
        except Exception as e:
            logger.warning("catalog_emit_failed", event=event.value, error=str(e))

    # --- Reads ---

    async def _load_raw(self) -> Dict[str, Any]:
        """Stored records as written. Raises when the key does not hold a mapping."""
        raw = await self.store.get(self.VENDORS_KEY, {})
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise TypeError(f"'{self.VENDORS_KEY}' holds {type(raw).__name__}, expected a mapping")
        return raw

    async def get_vendors(self) -> Dict[str, Vendor]:
        """Parses each record on its own; a malformed record is skipped, not dropped from the store"""
        try:
            raw = await self._load_raw()
        except Exception as e:
            logger.error("vendors_load_error", error=str(e))
            return {}
        vendors: Dict[str, Vendor] = {}
        for vendor_id, data in raw.items():
            try:
                vendors[vendor_id] = Vendor.from_dict(data)
            except Exception as e:
                logger.error("vendor_record_invalid", vendor_id=vendor_id, error=str(e))
        return vendors

    async def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        return (await self.get_vendors()).get(vendor_id)

    async def find_vendor_by_item_uuid(self, item_uuid: str) -> Optional[Tuple[Vendor, VendorItem]]:
        for vendor in (await self.get_vendors()).values():
            item = next((i for i in vendor.items if i.uuid == item_uuid), None)
            if item is not None:
                return vendor, item
        return None

    # --- Writes ---

    async def create_vendor(
        self,
        name: str,
        image: str = "",
        items: Optional[list] = None,
        active: bool = True,
    ) -> Optional[Vendor]:
        vendor = Vendor(
            id=VendorId(new_id()),
            name=name,
            image=image,
            active=active,
            items=list(items or []),
        )
        if not await self.update_vendor(vendor.id, vendor):
            return None
        logger.info("vendor_created", vendor_id=vendor.id, name=name, items=len(vendor.items))
        return vendor

    async def update_vendor(self, vendor_id: str, vendor: Vendor) -> bool:
        try:
            raw = dict(await self._load_raw())
            raw[vendor_id] = vendor.to_dict()
            await self.store.set(self.VENDORS_KEY, raw)
        except Exception as e:
            logger.error("vendor_update_error", vendor_id=vendor_id, error=str(e))
            return False
        await self._emit(ShopEvent.VENDOR_UPDATED, vendorId=vendor_id)
        return True

    async def delete_vendor(self, vendor_id: str) -> bool:
        try:
            raw = dict(await self._load_raw())
            if raw.pop(vendor_id, None) is None:
                return False
            await self.store.set(self.VENDORS_KEY, raw)
        except Exception as e:
            logger.error("vendor_delete_error", vendor_id=vendor_id, error=str(e))
            return False
        logger.info("vendor_deleted", vendor_id=vendor_id)
        await self._emit(ShopEvent.VENDOR_DELETED, vendorId=vendor_id)
        return True

    async def set_vendor_active(self, vendor_id: str, active: bool) -> bool:
        vendor = await self.get_vendor(vendor_id)
        if vendor is None:
            return False
        vendor.active = active
        return await self.update_vendor(vendor_id, vendor)

    # --- Items ---

    async def add_item_to_vendor(self, vendor_id: str, item: VendorItem) -> Optional[VendorItem]:
        """Appends a stock line. A missing id is generated; a duplicate id is rejected."""
        vendor = await self.get_vendor(vendor_id)
        if vendor is None:
            return None
        if not item.id:
            item.id = new_id()  # type: ignore[assignment]
        if vendor.find_item(item.id) is not None:
            logger.warning("vendor_item_duplicate", vendor_id=vendor_id, item_id=item.id)
            return None
        if item.quantity == 0:
            logger.warning("vendor_item_without_stock", vendor_id=vendor_id, item_id=item.id)
            return None
        vendor.items.append(item)
        if not await self.update_vendor(vendor_id, vendor):
            return None
        return item

    async def update_vendor_item(self, vendor_id: str, item_id: str, **changes: Any) -> bool:
        """Applies field changes after checking every value. Any invalid change rejects the whole update."""
        vendor = await self.get_vendor(vendor_id)
        item = vendor.find_item(item_id) if vendor else None
        if vendor is None or item is None:
            return False

        validated: Dict[str, Any] = {}
        for key, value in changes.items():
            checked = _check_item_field(key, value)
            if checked is _INVALID:
                logger.warning("vendor_item_invalid_change", vendor_id=vendor_id, item_id=item_id, field=key)
                return False
            validated[key] = checked

        for key, value in validated.items():
            setattr(item, key, value)
        if item.quantity is not None and item.quantity <= 0:
            vendor.items = [i for i in vendor.items if i.id != item_id]
        return await self.update_vendor(vendor_id, vendor)

    async def remove_item_from_vendor(self, vendor_id: str, item_id: str) -> bool:
        vendor = await self.get_vendor(vendor_id)
        if vendor is None or vendor.find_item(item_id) is None:
            return False
        vendor.items = [i for i in vendor.items if i.id != item_id]
        return await self.update_vendor(vendor_id, vendor)

    async def update_item_quantity_in_vendor(self, vendor_id: str, item_id: str, delta: int) -> bool:
        """
        Applies a stock change, clamped at zero. A line that reaches exactly zero is
        removed from the vendor. Unlimited lines are left as they are.
        """
        try:
            vendor = await self.get_vendor(vendor_id)
            if vendor is None:
                return False
            item = vendor.find_item(item_id)
            if item is None:
                return False

            if item.quantity is not None:
                new_quantity = max(0, item.quantity + int(delta))
                if new_quantity == 0:
                    vendor.items = [i for i in vendor.items if i.id != item_id]
                else:
                    item.quantity = new_quantity
                logger.debug(
                    "vendor_stock_changed",
                    vendor_id=vendor_id,
                    item_id=item_id,
                    delta=delta,
                    quantity=new_quantity,
                )

            if not await self.update_vendor(vendor_id, vendor):
                return False
        except Exception as e:
            logger.error("vendor_quantity_update_error", vendor_id=vendor_id, item_id=item_id, error=str(e))
            return False

        await self._emit(ShopEvent.ITEM_PURCHASED, vendorId=vendor_id, itemId=item_id)
        return True
