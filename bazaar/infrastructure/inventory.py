"""
Infrastructure: In-Memory Inventory & Actor Directory
Stand-in for the hosting game system's actor documents.
"""
import uuid as uuid_lib
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from bazaar.application.ports import IKeyValueStore
from bazaar.domain import ZERO, InventoryEntry, to_decimal

logger = structlog.get_logger()


@dataclass
class ItemTemplate:
    """A world item that can be copied into inventories by uuid"""
    uuid: str
    name: str
    price: Decimal = ZERO
    weight: Decimal = ZERO


class InMemoryInventory:
    """
    Item stacks per holder. Templates are registered up front; `add_item`
    merges into the holder's existing stack of the same template.
    """

    def __init__(self) -> None:
        self._templates: Dict[str, ItemTemplate] = {}
        self._stacks: Dict[str, List[InventoryEntry]] = {}

    def register_template(self, uuid: str, name: str, price: object = 0, weight: object = 0) -> ItemTemplate:
        template = ItemTemplate(uuid=uuid, name=name, price=to_decimal(price), weight=to_decimal(weight))
        self._templates[uuid] = template
        return template

    def _holder(self, holder_id: str) -> List[InventoryEntry]:
        return self._stacks.setdefault(holder_id, [])

    @staticmethod
    def _new_id() -> str:
        return uuid_lib.uuid4().hex[:16]

    async def add_item(self, holder_id: str, uuid: str, quantity: int) -> bool:
        template = self._templates.get(uuid)
        if template is None:
            logger.warning("item_template_not_found", holder_id=holder_id, uuid=uuid)
            return False
        if quantity < 1:
            return False

        stacks = self._holder(holder_id)
        existing = next((s for s in stacks if s.uuid == uuid), None)
        if existing is not None:
            existing.count += quantity
        else:
            stacks.append(InventoryEntry(
                id=self._new_id(),
                name=template.name,
                count=quantity,
                price=template.price,
                weight=template.weight,
                uuid=uuid,
            ))
        logger.debug("item_added", holder_id=holder_id, item=template.name, quantity=quantity)
        return True

    async def create_item(
        self, holder_id: str, name: str, count: int, price: Decimal, weight: Decimal
    ) -> bool:
        if count < 1:
            return False
        self._holder(holder_id).append(InventoryEntry(
            id=self._new_id(), name=name, count=count, price=to_decimal(price), weight=to_decimal(weight)
        ))
        return True

    async def list_items(self, holder_id: str) -> List[InventoryEntry]:
        return [replace(entry) for entry in self._stacks.get(holder_id, [])]

    async def get_item(self, holder_id: str, item_id: str) -> Optional[InventoryEntry]:
        entry = next((e for e in self._stacks.get(holder_id, []) if e.id == item_id), None)
        return replace(entry) if entry is not None else None

    async def remove_quantity(self, holder_id: str, item_id: str, quantity: int) -> bool:
        stacks = self._stacks.get(holder_id, [])
        entry = next((e for e in stacks if e.id == item_id), None)
        if entry is None or quantity < 1 or entry.count < quantity:
            return False
        entry.count -= quantity
        if entry.count == 0:
            stacks.remove(entry)
            logger.debug("item_deleted", holder_id=holder_id, item=entry.name)
        return True

    async def set_item_count(
        self, holder_id: str, name: str, count: int, price: Decimal, weight: Decimal
    ) -> bool:
        if count < 0:
            return False
        stacks = self._holder(holder_id)
        matches = [e for e in stacks if e.name == name]
        if matches:
            keep = matches[0]
            for duplicate in matches[1:]:
                stacks.remove(duplicate)
            keep.count = count
            keep.price = to_decimal(price)
            keep.weight = to_decimal(weight)
        else:
            stacks.append(InventoryEntry(
                id=self._new_id(), name=name, count=count, price=to_decimal(price), weight=to_decimal(weight)
            ))
        return True


class InMemoryActorDirectory:
    """Characters and users, and which user owns which character"""

    def __init__(self) -> None:
        self._actors: Dict[str, str] = {}
        self._owners: Dict[str, str] = {}
        self._users: Dict[str, str] = {}

    def register_user(self, user_id: str, name: str) -> None:
        self._users[user_id] = name

    def register_actor(self, actor_id: str, name: str, owner_id: Optional[str] = None) -> None:
        self._actors[actor_id] = name
        if owner_id is not None:
            self._owners[actor_id] = owner_id

    @property
    def actor_ids(self) -> List[str]:
        return list(self._actors)

    @property
    def user_ids(self) -> List[str]:
        return list(self._users)

    def get_actor_name(self, actor_id: str) -> Optional[str]:
        return self._actors.get(actor_id)

    def get_primary_owner(self, actor_id: str) -> Optional[str]:
        if actor_id not in self._actors:
            return None
        return self._owners.get(actor_id)

    def get_user_name(self, user_id: str) -> Optional[str]:
        return self._users.get(user_id)


async def load_world(store: IKeyValueStore, inventory: InMemoryInventory, directory: InMemoryActorDirectory) -> int:
    """
    Registers users, characters and item templates kept in the data file:
    {"users": {id: name}, "actors": {id: {"name", "owner"}}, "templates": {uuid: {"name", "price", "weight"}}}
    """
    try:
        users = await store.get("users", {}) or {}
        actors = await store.get("actors", {}) or {}
        templates = await store.get("templates", {}) or {}
    except Exception as e:
        logger.error("world_load_error", error=str(e))
        return 0

    for user_id, name in users.items():
        directory.register_user(user_id, str(name))
    for actor_id, info in actors.items():
        if not isinstance(info, dict):
            continue
        directory.register_actor(actor_id, str(info.get("name", actor_id)), info.get("owner"))
    for uuid, info in templates.items():
        if not isinstance(info, dict):
            continue
        inventory.register_template(uuid, str(info.get("name", uuid)), info.get("price", 0), info.get("weight", 0))

    logger.info("world_loaded", users=len(users), actors=len(actors), templates=len(templates))
    return len(actors)
