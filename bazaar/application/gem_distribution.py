"""
Application Layer: Gem Distribution
Turns an optimized gem bag into inventory items for a character.
"""
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

import structlog

from bazaar.application.ports import IActorDirectory, IInventoryStore
from bazaar.domain import ZERO, GemStack, find_optimal_gem_bag, to_decimal
from bazaar.domain.gems import format_accuracy

logger = structlog.get_logger()


@dataclass
class GemDistribution:
    success: bool
    message: str
    actor_name: str = ""
    target_value: Decimal = ZERO
    actual_value: Decimal = ZERO
    total_gems: int = 0
    total_weight: Decimal = ZERO
    accuracy: str = "0.0"
    gem_types: int = 0
    gems: List[GemStack] = field(default_factory=list)


class GemDistributor:
    """Runs the gem bag optimizer with the configured tables and stores the result"""

    def __init__(
        self,
        config: Any,
        inventory: IInventoryStore,
        actors: IActorDirectory,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.inventory = inventory
        self.actors = actors
        self.rng = rng

    async def distribute(
        self,
        actor_id: str,
        target_value: Any,
        min_types: Optional[int] = None,
        max_types: Optional[int] = None,
        min_base_value: Optional[Any] = None,
        max_base_value: Optional[Any] = None,
    ) -> GemDistribution:
        actor_name = self.actors.get_actor_name(actor_id)
        if actor_name is None:
            return GemDistribution(success=False, message="Actor not found")

        target = to_decimal(target_value)
        if target <= 0:
            return GemDistribution(success=False, message="Target value must be positive", actor_name=actor_name)

        bag = find_optimal_gem_bag(
            target,
            self.config.gem_base_values,
            self.config.gem_carat_sizes,
            min_gem_types=min_types if min_types is not None else self.config.min_gem_types,
            max_gem_types=max_types,
            min_base_value=min_base_value,
            max_base_value=max_base_value,
            rng=self.rng,
        )
        if bag.error:
            return GemDistribution(success=False, message=bag.error, actor_name=actor_name)
        if not bag.gems:
            return GemDistribution(
                success=False,
                message="Could not generate optimal gem combination",
                actor_name=actor_name,
            )

        total_gems = 0
        total_weight = ZERO
        actual_value = ZERO
        delivered: List[GemStack] = []

        for gem in bag.gems:
            ok = await self.inventory.create_item(actor_id, gem.label, gem.quantity, gem.total_value, gem.weight)
            if not ok:
                logger.warning("gem_delivery_failed", actor_id=actor_id, gem=gem.label)
                continue
            delivered.append(gem)
            total_gems += gem.quantity
            total_weight += gem.weight * gem.quantity
            actual_value += gem.total_value * gem.quantity

        accuracy = format_accuracy(actual_value, target)
        logger.info(
            "gems_distributed",
            actor_id=actor_id,
            target=str(target),
            value=str(actual_value),
            gems=total_gems,
            types=bag.unique_gem_types,
            accuracy=accuracy,
        )
        return GemDistribution(
            success=bool(delivered),
            message=(
                f"Distributed {total_gems} gems worth {actual_value.normalize():f} to {actor_name} "
                f"({accuracy}% of target)"
                if delivered else "No gems could be added to the inventory"
            ),
            actor_name=actor_name,
            target_value=target,
            actual_value=actual_value,
            total_gems=total_gems,
            total_weight=total_weight,
            accuracy=accuracy,
            gem_types=len({g.name for g in delivered}),
            gems=delivered,
        )

    async def current_gems_summary(self, actor_id: str) -> str:
        """Comma-separated gem stacks the actor carries"""
        if self.actors.get_actor_name(actor_id) is None:
            return "No character found"
        gem_names = [name.lower() for name in self.config.gem_base_values]
        gems = [
            entry for entry in await self.inventory.list_items(actor_id)
            if entry.count > 0 and any(name in entry.name.lower() for name in gem_names)
        ]
        if not gems:
            return "No gems found"
        return ", ".join(f"{entry.count}x {entry.name}" for entry in gems)
