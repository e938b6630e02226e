"""
Application Layer: Context
Every component of one participant, built once and passed around explicitly.
"""
import random
from dataclasses import dataclass
from typing import Any, Optional

from bazaar.application.approvals import ApprovalCoordinator
from bazaar.application.catalog import VendorCatalog
from bazaar.application.gem_distribution import GemDistributor
from bazaar.application.ledger import CurrencyLedger
from bazaar.application.ports import (
    IActorDirectory,
    IApprovalDialog,
    IInventoryStore,
    IKeyValueStore,
    IMessageChannel,
    INotificationService,
)
from bazaar.application.router import ShopEventRouter
from bazaar.application.transactions import TransactionManager
from bazaar.domain import Identity


@dataclass
class BazaarContext:
    identity: Identity
    config: Any
    store: IKeyValueStore
    inventory: IInventoryStore
    actors: IActorDirectory
    channel: IMessageChannel
    ledger: CurrencyLedger
    catalog: VendorCatalog
    approvals: ApprovalCoordinator
    transactions: TransactionManager
    gems: GemDistributor
    router: ShopEventRouter

    def refresh_settings(self, config: Any) -> None:
        """Swaps in new settings for every component that caches them"""
        self.config = config
        self.ledger.refresh_settings(config)
        self.transactions.config = config
        self.gems.config = config


def build_context(
    config: Any,
    store: IKeyValueStore,
    inventory: IInventoryStore,
    actors: IActorDirectory,
    channel: IMessageChannel,
    dialog: IApprovalDialog,
    notifier: Optional[INotificationService] = None,
    identity: Optional[Identity] = None,
    rng: Optional[random.Random] = None,
) -> BazaarContext:
    """Wires the components together and subscribes the router to the channel"""
    identity = identity or Identity(user_id=config.user_id, is_authority=config.is_authority)

    ledger = CurrencyLedger(config, store, inventory, actors)
    catalog = VendorCatalog(store, channel)
    approvals = ApprovalCoordinator(dialog)
    transactions = TransactionManager(
        identity=identity,
        config=config,
        ledger=ledger,
        catalog=catalog,
        inventory=inventory,
        actors=actors,
        channel=channel,
        approvals=approvals,
        notifier=notifier,
    )
    router = ShopEventRouter(transactions)
    channel.subscribe(router.handle)

    return BazaarContext(
        identity=identity,
        config=config,
        store=store,
        inventory=inventory,
        actors=actors,
        channel=channel,
        ledger=ledger,
        catalog=catalog,
        approvals=approvals,
        transactions=transactions,
        gems=GemDistributor(config, inventory, actors, rng=rng),
        router=router,
    )
