from typing import Dict, Any
from decimal import Decimal

from orders.models import OrderItem, OrderItemTracking


class TrackingService:

    @classmethod
    def serialize(cls, tracking: OrderItemTracking) -> Dict[str, Any]:
        return {
            "order_item_id": tracking.order_item_id,
            "quantity_target": str(tracking.quantity_target),
            "quantity_from_stock": str(tracking.quantity_from_stock),
            "quantity_from_production": str(tracking.quantity_from_production),
            "quantity_produced_approved": str(tracking.quantity_produced_approved),
            "quantity_packaged_approved": str(tracking.quantity_packaged_approved),
            "status": tracking.status,
            "status_display": tracking.get_status_display(),
        }

    @classmethod
    def for_item(cls, item: OrderItem) -> OrderItemTracking:
        """Locked tracking row for an item, created on first use."""
        tracking = OrderItemTracking.objects.select_for_update().filter(order_item=item).first()
        if tracking:
            return tracking
        tracking, _ = OrderItemTracking.objects.get_or_create(
            order_item=item,
            defaults={"quantity_target": item.quantity},
        )
        return tracking

    @classmethod
    def start(cls,
              item: OrderItem,
              from_stock: Decimal = Decimal("0"),
              from_production: Decimal = Decimal("0")) -> OrderItemTracking:
        tracking = OrderItemTracking(
            order_item=item,
            quantity_target=item.quantity,
            quantity_from_stock=from_stock,
            quantity_from_production=from_production,
        )
        cls.refresh_status(tracking)
        tracking.save()
        return tracking

    @classmethod
    def refresh_status(cls, tracking: OrderItemTracking) -> str:
        S = OrderItemTracking.Status
        if tracking.quantity_packaged_approved >= tracking.quantity_target:
            tracking.status = S.READY_FOR_SALE
        elif tracking.quantity_packaged_approved > 0:
            tracking.status = S.PARTIAL_PACKAGING
        elif tracking.quantity_produced_approved > 0 or tracking.quantity_from_stock > 0:
            tracking.status = S.READY_FOR_PACKAGING
        else:
            tracking.status = S.PENDING
        return tracking.status
