"""
Application Layer: Approval Coordinator
Suspends a request until a human decides, keyed by request id.
"""
import asyncio
from functools import partial
from typing import Dict, List, Optional, Tuple

import structlog

from bazaar.application.ports import IApprovalDialog
from bazaar.domain import DECLINED, ApprovalDecision, ApprovalRequest

logger = structlog.get_logger()


class ApprovalCoordinator:
    """
    Each pending approval is a future plus the dialog's completion callback.
    The callback settles the future at most once; a dismissal (None) is a decline.
    Only the waiting request is suspended, other requests keep flowing.
    """

    def __init__(self, dialog: IApprovalDialog):
        self.dialog = dialog
        self._pending: Dict[str, Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = {}

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    async def request(self, approval: ApprovalRequest) -> ApprovalDecision:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending[approval.request_id] = (loop, future)
        logger.info(
            "approval_requested",
            request_id=approval.request_id,
            kind=approval.kind.value,
            total=str(approval.total),
        )

        try:
            self.dialog.open(approval, partial(self.resolve, approval.request_id))
        except Exception as e:
            logger.error("approval_dialog_failed", request_id=approval.request_id, error=str(e))
            self.resolve(approval.request_id, None)

        try:
            decision = await future
        finally:
            self._pending.pop(approval.request_id, None)

        logger.info(
            "approval_resolved",
            request_id=approval.request_id,
            approved=decision.approved,
            percentage=decision.percentage,
        )
        return decision

    def resolve(self, request_id: str, decision: Optional[ApprovalDecision]) -> bool:
        """Completion callback. Safe to call from any thread; later calls are ignored."""
        entry = self._pending.get(request_id)
        if entry is None:
            logger.debug("approval_not_pending", request_id=request_id)
            return False
        loop, _ = entry
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            return self._settle(request_id, decision)
        loop.call_soon_threadsafe(self._settle, request_id, decision)
        return True

    def dismiss(self, request_id: str) -> bool:
        return self.resolve(request_id, None)

    def _settle(self, request_id: str, decision: Optional[ApprovalDecision]) -> bool:
        entry = self._pending.get(request_id)
        if entry is None or entry[1].done():
            logger.debug("approval_already_resolved", request_id=request_id)
            return False
        entry[1].set_result(decision if decision is not None else DECLINED)
        return True
