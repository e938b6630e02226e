"""
Infrastructure Layer: Console Approval Dialog
Asks the GM at the terminal whether a trade may go ahead.
"""
import asyncio
from typing import Callable, Optional, Set

import structlog
from rich import box
from rich.console import Console
from rich.prompt import Confirm, IntPrompt
from rich.table import Table

from bazaar.application.ports import ApprovalCallback
from bazaar.domain import ApprovalDecision, ApprovalRequest, TradeKind, clamp_percentage

logger = structlog.get_logger()


class ConsoleApprovalDialog:
    """
    One prompt at a time; the others queue behind it.
    Ctrl+C / EOF at the prompt dismisses the dialog, which declines the trade.
    """

    def __init__(
        self, console: Optional[Console] = None, format_currency: Callable[[object], str] = str
    ) -> None:
        self.console = console or Console()
        self.format_currency = format_currency
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    def open(self, request: ApprovalRequest, complete: ApprovalCallback) -> None:
        task = asyncio.get_running_loop().create_task(self._run(request, complete))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, request: ApprovalRequest, complete: ApprovalCallback) -> None:
        decision: Optional[ApprovalDecision] = None
        try:
            async with self._lock:
                decision = await asyncio.to_thread(self._ask, request)
        except (KeyboardInterrupt, EOFError):
            logger.info("approval_dialog_dismissed", request_id=request.request_id)
        except Exception as e:
            logger.error("approval_dialog_error", request_id=request.request_id, error=str(e))
        finally:
            complete(decision)

    def _render(self, request: ApprovalRequest) -> Table:
        verb = "buy" if request.kind is TradeKind.PURCHASE else "sell"
        table = Table(
            title=f"{request.user_name} wants {request.actor_name} to {verb}",
            box=box.SIMPLE,
            expand=False,
        )
        table.add_column("Item", style="cyan")
        table.add_column("Qty", justify="right")
        table.add_column("Price", justify="right", style="green")
        for item in request.items:
            table.add_row(item.name or item.id, str(item.quantity), self.format_currency(item.price))
        table.add_row("[bold]Total[/bold]", "", f"[bold]{self.format_currency(request.total)}[/bold]")
        return table

    def _ask(self, request: ApprovalRequest) -> ApprovalDecision:
        self.console.print(self._render(request))
        if request.kind is TradeKind.PURCHASE:
            return ApprovalDecision(approved=Confirm.ask("Approve purchase?", console=self.console))

        if not Confirm.ask("Approve sale?", console=self.console):
            return ApprovalDecision(approved=False)
        default = request.default_percentage if request.default_percentage is not None else 100
        percentage = IntPrompt.ask("Pay what percentage of the value?", default=default, console=self.console)
        return ApprovalDecision(approved=True, percentage=clamp_percentage(percentage, default))
