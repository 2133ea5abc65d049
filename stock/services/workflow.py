"""
State machines for orders, production, packaging and sales.

Each table maps (state, event) to the next state. Anything not listed is an
invalid transition and raises BusinessRuleError.
"""

import logging
from typing import Dict, List, Tuple

from stock.models import ProductionEntry, PackagingEntry
from stock.services.base_service import BusinessRuleError

logger = logging.getLogger(__name__)


class TransitionTable:
    def __init__(self, name: str, transitions: Dict[Tuple[str, str], str]):
        self.name = name
        self.transitions = transitions

    def can(self, state: str, event: str) -> bool:
        return (state, event) in self.transitions

    def next_state(self, state: str, event: str) -> str:
        try:
            return self.transitions[(state, event)]
        except KeyError:
            raise BusinessRuleError(
                f"Cannot {event.replace('_', ' ')} {self.name} in {state} status",
                f"{self.name}.{event}",
            )

    def events_from(self, state: str) -> List[str]:
        return [event for (source, event) in self.transitions if source == state]

    def apply(self, obj, event: str, field: str = "status") -> str:
        """Move obj to the next state in place and return it. Does not save."""
        current = getattr(obj, field)
        new_state = self.next_state(current, event)
        setattr(obj, field, new_state)
        logger.debug("%s %s: %s -[%s]-> %s", self.name, obj.pk, current, event, new_state)
        return new_state


def _order_table() -> TransitionTable:
    from orders.models import Order
    S = Order.Status
    transitions = {
        (S.PENDING, "route_to_production"): S.IN_PRODUCTION,
        (S.PENDING, "route_to_packaging"): S.IN_PACKAGING,
        (S.IN_PRODUCTION, "route_to_packaging"): S.IN_PACKAGING,
        (S.IN_PRODUCTION, "production_approved"): S.IN_PACKAGING,
        (S.IN_PACKAGING, "mark_packaged"): S.PACKAGED,
        (S.IN_PACKAGING, "release_for_sale"): S.RELEASED_FOR_SALE,
        (S.PACKAGED, "release_for_sale"): S.RELEASED_FOR_SALE,
        (S.RELEASED_FOR_SALE, "confirm_sale"): S.SALE_CONFIRMED,
        (S.SALE_CONFIRMED, "dispatch"): S.IN_DELIVERY,
        (S.IN_DELIVERY, "deliver"): S.DELIVERED,
    }
    for state in (S.PENDING, S.IN_PRODUCTION, S.IN_PACKAGING, S.PACKAGED, S.RELEASED_FOR_SALE, S.SALE_CONFIRMED):
        transitions[(state, "cancel")] = S.CANCELLED
    return TransitionTable("order", transitions)


def _shop_floor_table(name: str, S) -> TransitionTable:
    return TransitionTable(name, {
        (S.PENDING, "start"): S.IN_PROGRESS,
        (S.IN_PROGRESS, "complete"): S.COMPLETED,
        (S.COMPLETED, "approve"): S.APPROVED,
        (S.PENDING, "reject"): S.REJECTED,
        (S.IN_PROGRESS, "reject"): S.REJECTED,
        (S.COMPLETED, "reject"): S.REJECTED,
    })


def _sale_table() -> TransitionTable:
    from orders.models import Sale
    S = Sale.Status
    return TransitionTable("sale", {
        (S.PENDING, "confirm"): S.CONFIRMED,
        (S.CONFIRMED, "invoice"): S.INVOICED,
        (S.PENDING, "cancel"): S.CANCELLED,
        (S.CONFIRMED, "cancel"): S.CANCELLED,
    })


ORDER_TRANSITIONS = _order_table()
PRODUCTION_TRANSITIONS = _shop_floor_table("production", ProductionEntry.Status)
PACKAGING_TRANSITIONS = _shop_floor_table("packaging", PackagingEntry.Status)
SALE_TRANSITIONS = _sale_table()
