from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import Forbidden, WorkOrderClosed
from .models import CLOSED_WORK_ORDER_STATUSES, PRIVILEGED_ROLES, TimePunch, User, WorkOrder

ALLOW = "allow"
DENY_FORBIDDEN = "forbidden"
DENY_WORK_ORDER_CLOSED = "work_order_closed"


@dataclass(frozen=True)
class PolicyDecision:
    outcome: str

    @property
    def allowed(self) -> bool:
        return self.outcome == ALLOW


def evaluate_punch_mutation(
    actor_id: int,
    actor_role: str,
    punch_owner_id: int,
    work_order: Optional[WorkOrder],
) -> PolicyDecision:
    """Decide whether the actor may edit or delete a punch.

    ``work_order`` is the work order the punch is linked to, or ``None`` for a
    general punch. Roles, assignments and work order status can change between
    requests, so callers evaluate this on every mutation.
    """
    if actor_role in PRIVILEGED_ROLES:
        return PolicyDecision(ALLOW)
    if work_order is not None:
        if work_order.status in CLOSED_WORK_ORDER_STATUSES:
            return PolicyDecision(DENY_WORK_ORDER_CLOSED)
        if actor_id == punch_owner_id or actor_id == work_order.assigned_to_id:
            return PolicyDecision(ALLOW)
        return PolicyDecision(DENY_FORBIDDEN)
    if actor_id == punch_owner_id:
        return PolicyDecision(ALLOW)
    return PolicyDecision(DENY_FORBIDDEN)


def ensure_punch_mutation_allowed(
    actor: User,
    punch: TimePunch,
    work_order: Optional[WorkOrder],
    action: str,
) -> None:
    decision = evaluate_punch_mutation(actor.id, actor.role, punch.user_id, work_order)
    if decision.allowed:
        return
    if decision.outcome == DENY_WORK_ORDER_CLOSED:
        raise WorkOrderClosed(f"Cannot {action} punches on closed work orders")
    raise Forbidden(f"You are not authorized to {action} this punch")
