"""
Domain Layer: Gem Bag Optimizer
Builds a varied bag of gems whose value approaches a target without exceeding it.
"""
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Set

from .models import ZERO, to_decimal

DEFAULT_GEM_BASE_VALUES: Dict[str, int] = {
    "Agate": 5, "Azurite": 10, "Chalcedony": 10, "Hematite": 5, "Jade": 20, "Jet": 10,
    "Magnetite": 5, "Malachite": 15, "Obsidian": 2, "Quartz": 15, "Amber": 25, "Amethyst": 30,
    "Calcite": 20, "Sard": 25, "Coral": 20, "Lapis Lazuli": 25, "Onyx": 20, "Tourmaline": 25,
    "Turquoise": 20, "Aquamarine": 30, "Beryl": 30, "Bloodstone": 30, "Cat's Eye": 30,
    "Emerald": 35, "Garnet": 35, "Iolite": 30, "Moonstone": 30, "Opal": 35, "Pearl": 35,
    "Peridot": 30, "Ruby": 35, "Sapphire": 35, "Topaz": 35, "Diamond": 40,
}

DEFAULT_CARAT_SIZES: List[float] = [0.5, 0.75, 1, 1.25, 1.5, 1.75, 2, 2.25, 2.5, 2.75, 3]

CARATS_PER_POUND = Decimal("2488")

# Tier 2 scoring weights: type usage dominates size usage, which dominates value
TYPE_USAGE_WEIGHT = Decimal("100")
SIZE_USAGE_WEIGHT = Decimal("10")
VALUE_WEIGHT = Decimal("0.01")


def calculate_gem_value(carats: Decimal, base_value: Decimal) -> Decimal:
    """value = (carats^2 + 4 * carats) * base value"""
    return (carats * carats + 4 * carats) * base_value


def calculate_gem_weight(carats: Decimal) -> Decimal:
    """Weight in pounds"""
    return carats / CARATS_PER_POUND


@dataclass(frozen=True)
class GemCombination:
    name: str
    carats: Decimal
    base_value: Decimal
    total_value: Decimal
    weight: Decimal


@dataclass
class GemStack:
    """Identical gems (same type and size) in the bag"""
    name: str
    carats: Decimal
    base_value: Decimal
    total_value: Decimal
    weight: Decimal
    quantity: int = 1

    @property
    def label(self) -> str:
        return f"{self.name} ({self.carats.normalize():f} ct)"


@dataclass
class GemBagResult:
    gems: List[GemStack]
    total_value: Decimal
    target_value: Decimal
    difference: Decimal
    accuracy: str
    unique_gem_types: int
    carat_variety_used: int
    total_gem_count: int = 0
    gem_types_used: int = 0
    carat_sizes_used: List[Decimal] = field(default_factory=list)
    gem_type_names: List[str] = field(default_factory=list)
    actual_gem_types_selected: int = 0
    valid_gem_types_available: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def generate_gem_combinations(
    gem_values: Mapping[str, object],
    carat_sizes: Sequence[object],
) -> List[GemCombination]:
    """Every (type, size) pair, cheapest first"""
    combinations = []
    for name, raw_base in gem_values.items():
        base_value = to_decimal(raw_base)
        for raw_carats in carat_sizes:
            carats = to_decimal(raw_carats)
            combinations.append(GemCombination(
                name=name,
                carats=carats,
                base_value=base_value,
                total_value=calculate_gem_value(carats, base_value),
                weight=calculate_gem_weight(carats),
            ))
    return sorted(combinations, key=lambda c: c.total_value)


def format_accuracy(achieved: Decimal, target: Decimal) -> str:
    if achieved <= 0 or target <= 0:
        return "0.0"
    return f"{achieved / target * 100:.1f}"


def _error_result(target: Decimal, message: str, available: int = 0) -> GemBagResult:
    return GemBagResult(
        gems=[],
        total_value=ZERO,
        target_value=target,
        difference=target,
        accuracy="0.0",
        unique_gem_types=0,
        carat_variety_used=0,
        valid_gem_types_available=available,
        error=message,
    )


def find_optimal_gem_bag(
    target_value: object,
    gem_values: Mapping[str, object],
    carat_sizes: Sequence[object],
    min_gem_types: int = 3,
    max_gem_types: Optional[int] = None,
    min_base_value: Optional[object] = None,
    max_base_value: Optional[object] = None,
    rng: Optional[random.Random] = None,
) -> GemBagResult:
    """
    Greedy gem bag search.

    1. Keep gem types whose base value is within [min_base_value, max_base_value].
    2. Pick how many types to use (uniformly between the clamped bounds), then
       which ones (uniformly).
    3. Fill the bag cheapest-first. Every chosen type is represented once before
       any balancing; afterwards the least used type and size win; as a last
       resort the cheapest fitting gem of a used type is taken.

    The selection is random: callers can rely on the constraints (type count,
    value never above target) but not on the exact gems.
    """
    rng = rng or random.Random()
    target = to_decimal(target_value)
    low = None if min_base_value is None else to_decimal(min_base_value)
    high = None if max_base_value is None else to_decimal(max_base_value)

    valid_types = [
        (name, to_decimal(value))
        for name, value in gem_values.items()
        if (low is None or to_decimal(value) >= low) and (high is None or to_decimal(value) <= high)
    ]
    if not valid_types:
        return _error_result(target, "No valid gem types in the specified value range")

    effective_min = min(min_gem_types, len(valid_types))
    effective_max = len(valid_types) if max_gem_types is None else min(max_gem_types, len(valid_types))
    if effective_min > effective_max:
        return _error_result(
            target,
            f"Minimum gem types ({effective_min}) cannot be greater than maximum gem types ({effective_max})",
            available=len(valid_types),
        )

    types_to_use = rng.randint(effective_min, effective_max)
    selected_types = dict(rng.sample(valid_types, types_to_use))
    combinations = generate_gem_combinations(selected_types, carat_sizes)

    stacks: Dict[tuple, GemStack] = {}
    used_types: Set[str] = set()
    type_usage: Dict[str, int] = {name: 0 for name in selected_types}
    size_usage: Dict[Decimal, int] = {}
    remaining = target
    total = ZERO

    while remaining > 0:
        fitting = [c for c in combinations if c.total_value <= remaining]
        if not fitting:
            break

        chosen: Optional[GemCombination] = None

        # Tier 1: represent every selected type before balancing
        if len(used_types) < types_to_use:
            chosen = next((c for c in fitting if c.name not in used_types), None)

        # Tier 2: favour under-used types, then under-used sizes, then cheaper gems
        if chosen is None:
            best_score = None
            for combo in fitting:
                if combo.name not in used_types:
                    continue
                score = (
                    type_usage.get(combo.name, 0) * TYPE_USAGE_WEIGHT
                    + size_usage.get(combo.carats, 0) * SIZE_USAGE_WEIGHT
                    + combo.total_value * VALUE_WEIGHT
                )
                if best_score is None or score < best_score:
                    best_score = score
                    chosen = combo

        # Tier 3
        if chosen is None:
            chosen = next((c for c in fitting if c.name in used_types), None)

        if chosen is None:
            break

        used_types.add(chosen.name)
        type_usage[chosen.name] = type_usage.get(chosen.name, 0) + 1
        size_usage[chosen.carats] = size_usage.get(chosen.carats, 0) + 1

        key = (chosen.name, chosen.carats)
        if key in stacks:
            stacks[key].quantity += 1
        else:
            stacks[key] = GemStack(
                name=chosen.name,
                carats=chosen.carats,
                base_value=chosen.base_value,
                total_value=chosen.total_value,
                weight=chosen.weight,
            )

        remaining -= chosen.total_value
        total += chosen.total_value

    gems = list(stacks.values())
    type_names = sorted({g.name for g in gems})
    sizes = sorted({g.carats for g in gems})

    return GemBagResult(
        gems=gems,
        total_value=total,
        target_value=target,
        difference=target - total,
        accuracy=format_accuracy(total, target),
        unique_gem_types=len(type_names),
        carat_variety_used=len(sizes),
        total_gem_count=sum(g.quantity for g in gems),
        gem_types_used=len(stacks),
        carat_sizes_used=sizes,
        gem_type_names=type_names,
        actual_gem_types_selected=types_to_use,
        valid_gem_types_available=len(valid_types),
    )
