"""
Application Layer: Ports (Interfaces)
Defines how the Application layer expects to interact with the Infrastructure.
"""
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from bazaar.domain import ApprovalDecision, ApprovalRequest, InventoryEntry

Message = Dict[str, Any]
MessageHandler = Callable[[Message], Awaitable[None]]
ApprovalCallback = Callable[[Optional[ApprovalDecision]], None]


class IKeyValueStore(Protocol):
    """Host-provided settings storage"""

    async def get(self, key: str, default: Any = None) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...


class IInventoryStore(Protocol):
    """Per-holder item storage of the hosted game system"""

    async def add_item(self, holder_id: str, uuid: str, quantity: int) -> bool:
        """Adds N units of a template, merging into an existing stack. Returns once applied."""
        ...

    async def create_item(
        self, holder_id: str, name: str, count: int, price: Decimal, weight: Decimal
    ) -> bool:
        """Creates a stand-alone item not backed by a template"""
        ...

    async def list_items(self, holder_id: str) -> List[InventoryEntry]:
        ...

    async def get_item(self, holder_id: str, item_id: str) -> Optional[InventoryEntry]:
        ...

    async def remove_quantity(self, holder_id: str, item_id: str, quantity: int) -> bool:
        """Decrements a stack, deleting it when it reaches zero"""
        ...

    async def set_item_count(
        self, holder_id: str, name: str, count: int, price: Decimal, weight: Decimal
    ) -> bool:
        """Upserts the single stack with this name. Zero-count stacks are kept."""
        ...


class IActorDirectory(Protocol):
    """Characters, users and who owns what"""

    def get_actor_name(self, actor_id: str) -> Optional[str]:
        ...

    def get_primary_owner(self, actor_id: str) -> Optional[str]:
        ...

    def get_user_name(self, user_id: str) -> Optional[str]:
        ...


class IApprovalDialog(Protocol):
    """
    Human decision surface. Must eventually call `complete` exactly once:
    with a decision, or with None when dismissed.
    """

    def open(self, request: ApprovalRequest, complete: ApprovalCallback) -> None:
        ...


class IMessageChannel(Protocol):
    """Bidirectional per-module message bus between participants"""

    async def emit(self, message: Message) -> None:
        ...

    def subscribe(self, handler: MessageHandler) -> None:
        ...


class INotificationService(Protocol):
    """Interface for user notifications"""

    async def notify(self, message: str, level: str = "INFO") -> None:
        ...
