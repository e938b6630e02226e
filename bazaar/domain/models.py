"""
Domain Layer: Entities and Value Objects
Pure Python, No external dependencies.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, NewType, Optional

# --- Value Objects ---

VendorId = NewType("VendorId", str)
ItemId = NewType("ItemId", str)
HolderId = NewType("HolderId", str)

CoinBag = Dict[str, int]

ZERO = Decimal("0")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerces numbers and numeric strings to a finite Decimal"""
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    return result if result.is_finite() else default


@dataclass(frozen=True)
class Denomination:
    """A named coin with a fixed nominal value and per-coin weight"""
    name: str
    value: Decimal
    weight: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Denomination":
        return cls(
            name=str(data["name"]),
            value=to_decimal(data.get("value")),
            weight=to_decimal(data.get("weight")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": str(self.value), "weight": str(self.weight)}


@dataclass(frozen=True)
class Identity:
    """The local participant: who we are and whether we hold authority"""
    user_id: str
    is_authority: bool = False


# --- Entities ---

@dataclass
class VendorItem:
    """Stock line of a vendor. quantity=None means unlimited stock."""
    id: ItemId
    name: str
    price: Decimal
    quantity: Optional[int] = None
    uuid: str = ""
    image: str = ""
    weight: Decimal = ZERO

    @property
    def is_unlimited(self) -> bool:
        return self.quantity is None

    def has_stock_for(self, quantity: int) -> bool:
        return self.quantity is None or self.quantity >= quantity

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorItem":
        raw_qty = data.get("quantity")
        return cls(
            id=ItemId(str(data["id"])),
            name=str(data.get("name", "Unnamed Item")),
            price=to_decimal(data.get("price")),
            quantity=None if raw_qty is None else max(0, int(raw_qty)),
            uuid=str(data.get("uuid", "")),
            image=str(data.get("image", "")),
            weight=to_decimal(data.get("weight")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "uuid": self.uuid,
            "image": self.image,
            "weight": str(self.weight),
        }


@dataclass
class Vendor:
    """Vendor Entity"""
    id: VendorId
    name: str
    image: str = ""
    active: bool = True
    items: List[VendorItem] = field(default_factory=list)

    def find_item(self, item_id: str) -> Optional[VendorItem]:
        return next((item for item in self.items if item.id == item_id), None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vendor":
        return cls(
            id=VendorId(str(data["id"])),
            name=str(data.get("name", "")),
            image=str(data.get("image", "")),
            active=bool(data.get("active", True)),
            items=[VendorItem.from_dict(i) for i in data.get("items", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "active": self.active,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class InventoryEntry:
    """Flattened view of one item a holder carries"""
    id: str
    name: str
    count: int
    price: Decimal = ZERO
    weight: Decimal = ZERO
    uuid: str = ""


# --- Messages ---

class ShopEvent(str, Enum):
    """Message channel event types"""
    VENDOR_UPDATED = "vendorUpdated"
    VENDOR_DELETED = "vendorDeleted"
    ITEM_PURCHASED = "itemPurchased"
    PLAYER_PURCHASE_REQUEST = "playerPurchaseRequest"
    PURCHASE_COMPLETED = "purchaseCompleted"
    PURCHASE_FAILED = "purchaseFailed"
    PLAYER_SELL_REQUEST = "playerSellRequest"
    SELL_COMPLETED = "sellCompleted"
    SELL_FAILED = "sellFailed"


class TradeKind(str, Enum):
    PURCHASE = "purchase"
    SELL = "sell"

    @property
    def request_event(self) -> ShopEvent:
        if self is TradeKind.PURCHASE:
            return ShopEvent.PLAYER_PURCHASE_REQUEST
        return ShopEvent.PLAYER_SELL_REQUEST

    def result_event(self, success: bool) -> ShopEvent:
        if self is TradeKind.PURCHASE:
            return ShopEvent.PURCHASE_COMPLETED if success else ShopEvent.PURCHASE_FAILED
        return ShopEvent.SELL_COMPLETED if success else ShopEvent.SELL_FAILED


RESULT_EVENTS = {
    ShopEvent.PURCHASE_COMPLETED: TradeKind.PURCHASE,
    ShopEvent.PURCHASE_FAILED: TradeKind.PURCHASE,
    ShopEvent.SELL_COMPLETED: TradeKind.SELL,
    ShopEvent.SELL_FAILED: TradeKind.SELL,
}


@dataclass
class RequestedItem:
    """One {item, quantity} line of a request. quantity is raw requester input."""
    id: str
    quantity: Any = 1
    price: Decimal = ZERO
    name: str = ""
    uuid: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestedItem":
        return cls(
            id=str(data.get("id", "")),
            quantity=data.get("quantity", 1),
            price=to_decimal(data.get("price")),
            name=str(data.get("name") or ""),
            uuid=str(data.get("uuid") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "quantity": self.quantity,
            "price": str(self.price),
            "name": self.name,
            "uuid": self.uuid,
        }


@dataclass
class TradeRequest:
    """Purchase or sell intent. Consumed once by the authority, never persisted."""
    request_id: str
    kind: TradeKind
    user_id: str
    actor_id: str
    items: List[RequestedItem] = field(default_factory=list)
    vendor_id: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.kind.request_event.value,
            "userId": self.user_id,
            "requestId": self.request_id,
            "actorId": self.actor_id,
            "vendorId": self.vendor_id,
            "selectedItems": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_message(cls, kind: TradeKind, message: Dict[str, Any]) -> "TradeRequest":
        return cls(
            request_id=str(message.get("requestId", "")),
            kind=kind,
            user_id=str(message.get("userId", "")),
            actor_id=str(message.get("actorId", "")),
            vendor_id=message.get("vendorId"),
            items=[RequestedItem.from_dict(i) for i in message.get("selectedItems") or []],
        )


@dataclass
class InvalidLine:
    """A request line dropped during validation, with the reason"""
    id: str
    name: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "reason": self.reason}


class TransactionState(Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    AWAITING_APPROVAL = "awaiting_approval"
    APPLYING = "applying"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionState.COMPLETED, TransactionState.FAILED)


_TRANSITIONS = {
    TransactionState.RECEIVED: {TransactionState.VALIDATED, TransactionState.FAILED},
    TransactionState.VALIDATED: {
        TransactionState.AWAITING_APPROVAL,
        TransactionState.APPLYING,
        TransactionState.FAILED,
    },
    TransactionState.AWAITING_APPROVAL: {TransactionState.APPLYING, TransactionState.FAILED},
    TransactionState.APPLYING: {TransactionState.COMPLETED, TransactionState.FAILED},
    TransactionState.COMPLETED: set(),
    TransactionState.FAILED: set(),
}


@dataclass
class Transaction:
    """Lifecycle of a single request on the authority"""
    request: TradeRequest
    state: TransactionState = TransactionState.RECEIVED

    def advance(self, new_state: TransactionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise TransactionStateError(
                f"Request {self.request.request_id}: {self.state.value} -> {new_state.value} is not allowed"
            )
        self.state = new_state

    def fail(self) -> None:
        if not self.state.is_terminal:
            self.state = TransactionState.FAILED


@dataclass
class TransactionResult:
    """Outcome reported back to the original requester"""
    request_id: str
    kind: TradeKind
    success: bool
    message: str
    state: TransactionState = TransactionState.FAILED
    item_count: int = 0
    amount: Decimal = ZERO
    new_balance: Optional[Decimal] = None
    percentage: Optional[int] = None
    invalid_items: List[InvalidLine] = field(default_factory=list)

    def to_message(self, user_id: str) -> Dict[str, Any]:
        amount_key = "totalCost" if self.kind is TradeKind.PURCHASE else "totalValue"
        message: Dict[str, Any] = {
            "type": self.kind.result_event(self.success).value,
            "userId": user_id,
            "requestId": self.request_id,
            "message": self.message,
            "itemCount": self.item_count,
            amount_key: str(self.amount),
            "invalidItems": [line.to_dict() for line in self.invalid_items],
        }
        if self.new_balance is not None:
            message["newBalance"] = str(self.new_balance)
        if self.percentage is not None:
            message["percentage"] = self.percentage
        return message

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "TransactionResult":
        event = ShopEvent(message["type"])
        kind = RESULT_EVENTS[event]
        success = event in (ShopEvent.PURCHASE_COMPLETED, ShopEvent.SELL_COMPLETED)
        amount_key = "totalCost" if kind is TradeKind.PURCHASE else "totalValue"
        balance = message.get("newBalance")
        return cls(
            request_id=str(message.get("requestId", "")),
            kind=kind,
            success=success,
            message=str(message.get("message", "")),
            state=TransactionState.COMPLETED if success else TransactionState.FAILED,
            item_count=int(message.get("itemCount", 0)),
            amount=to_decimal(message.get(amount_key)),
            new_balance=None if balance is None else to_decimal(balance),
            percentage=message.get("percentage"),
            invalid_items=[
                InvalidLine(id=i.get("id", ""), name=i.get("name", ""), reason=i.get("reason", ""))
                for i in message.get("invalidItems", [])
            ],
        )


@dataclass
class ApprovalRequest:
    """What the approver sees before deciding"""
    request_id: str
    kind: TradeKind
    actor_name: str
    user_name: str
    items: List[RequestedItem]
    total: Decimal
    default_percentage: Optional[int] = None


@dataclass(frozen=True)
class ApprovalDecision:
    approved: bool
    percentage: Optional[int] = None


DECLINED = ApprovalDecision(approved=False, percentage=0)

# --- Exceptions ---

class DomainError(Exception):
    """Base domain exception"""

class InvalidQuantityError(DomainError):
    """Raised when a coin count is not a non-negative integer"""

class InvalidTotalError(DomainError):
    """Raised when change is requested for a non-integer or negative total"""

class MissingDenominationsError(DomainError):
    """Raised when no denominations are configured"""

class TransactionStateError(DomainError):
    """Raised on an illegal request state transition"""

class InvalidConfigurationError(DomainError):
    """Raised when config is invalid"""
