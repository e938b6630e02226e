"""
Domain Layer
"""
from .models import (
    ApprovalDecision,
    ApprovalRequest,
    CoinBag,
    DECLINED,
    Denomination,
    DomainError,
    HolderId,
    Identity,
    InvalidConfigurationError,
    InvalidLine,
    InvalidQuantityError,
    InvalidTotalError,
    InventoryEntry,
    ItemId,
    MissingDenominationsError,
    RESULT_EVENTS,
    RequestedItem,
    ShopEvent,
    TradeKind,
    TradeRequest,
    Transaction,
    TransactionResult,
    TransactionState,
    TransactionStateError,
    Vendor,
    VendorId,
    VendorItem,
    ZERO,
    to_decimal,
)
from .denominations import (
    DEFAULT_DENOMINATIONS,
    MODULE_SCALE,
    base_unit_multiplier,
    make_change,
    normalize_coins,
    scale_denominations,
    value_from_coins,
)
from .pricing import PriceCalculator, SellPayoutPolicy, clamp_percentage, coerce_quantity, round_up
from .gems import (
    DEFAULT_CARAT_SIZES,
    DEFAULT_GEM_BASE_VALUES,
    GemBagResult,
    GemStack,
    calculate_gem_value,
    calculate_gem_weight,
    find_optimal_gem_bag,
)

__all__ = [
    "ApprovalDecision",
    "ApprovalRequest",
    "CoinBag",
    "DECLINED",
    "Denomination",
    "DomainError",
    "HolderId",
    "Identity",
    "InvalidConfigurationError",
    "InvalidLine",
    "InvalidQuantityError",
    "InvalidTotalError",
    "InventoryEntry",
    "ItemId",
    "MissingDenominationsError",
    "RESULT_EVENTS",
    "RequestedItem",
    "ShopEvent",
    "TradeKind",
    "TradeRequest",
    "Transaction",
    "TransactionResult",
    "TransactionState",
    "TransactionStateError",
    "Vendor",
    "VendorId",
    "VendorItem",
    "ZERO",
    "to_decimal",
    "DEFAULT_DENOMINATIONS",
    "MODULE_SCALE",
    "base_unit_multiplier",
    "make_change",
    "normalize_coins",
    "scale_denominations",
    "value_from_coins",
    "PriceCalculator",
    "SellPayoutPolicy",
    "clamp_percentage",
    "coerce_quantity",
    "round_up",
    "DEFAULT_CARAT_SIZES",
    "DEFAULT_GEM_BASE_VALUES",
    "GemBagResult",
    "GemStack",
    "calculate_gem_value",
    "calculate_gem_weight",
    "find_optimal_gem_bag",
]
