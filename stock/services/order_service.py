"""
Order routing: decide, per order item, whether it ships from stock, gets
produced, or both.
"""
import logging
from typing import Dict, Any
from decimal import Decimal
from django.db import transaction

from stock.models import Product, StockMovement, FulfillmentSettings
from stock.services.base_service import Actor, success_response, NotFoundError, BusinessRuleError
from stock.services.packaging_service import PackagingService
from stock.services.production_service import ProductionService
from stock.services.stock_service import StockLedgerService
from stock.services.workflow import ORDER_TRANSITIONS
from orders.models import Order, OrderItem, OrderItemTracking
from orders.services.tracking_service import TrackingService

logger = logging.getLogger(__name__)


ROUTABLE_STATUSES = [
    Order.Status.PENDING,
    Order.Status.IN_PRODUCTION,
    Order.Status.IN_PACKAGING,
]


class OrderRoutingService:
    """
    Split each order item between stock and production.

    - enough stock: package everything from stock
    - short, manufactured product: produce the shortfall and package what
      is on hand
    - short, bought-in product: nothing is created, the caller gets a warning

    The whole run is one transaction. Items that already carry a tracking
    row were routed before and are skipped, so routing twice never deducts
    twice.
    """

    @classmethod
    @transaction.atomic
    def route_order(cls, order_id: int, actor: Actor) -> Dict[str, Any]:
        order = Order.objects.for_company(actor.company_id).select_for_update().filter(id=order_id).first()
        if not order:
            raise NotFoundError("Order", order_id)

        if order.status not in ROUTABLE_STATUSES:
            raise BusinessRuleError(f"Cannot route order in {order.status} status", "order.route")

        settings = FulfillmentSettings.load()
        production_entries = []
        packaging_entries = []
        messages = []
        warnings = []

        routed_ids = set(
            OrderItemTracking.objects.filter(order_item__order=order).values_list("order_item_id", flat=True)
        )

        for item in order.items.all():
            if item.id in routed_ids:
                messages.append(f"{item.product_name}: already routed")
                continue

            product = Product.objects.select_for_update().get(id=item.product_id)
            outcome = cls._route_item(order, item, product, actor, settings)

            production_entries.extend(outcome["production"])
            packaging_entries.extend(outcome["packaging"])
            messages.append(outcome["message"])
            warnings.extend(outcome["warnings"])

        previous_status = order.status
        if packaging_entries and ORDER_TRANSITIONS.can(order.status, "route_to_packaging"):
            ORDER_TRANSITIONS.apply(order, "route_to_packaging")
        elif production_entries and ORDER_TRANSITIONS.can(order.status, "route_to_production"):
            ORDER_TRANSITIONS.apply(order, "route_to_production")

        if order.status != previous_status:
            order.save(update_fields=["status", "updated_at"])

        logger.info(
            "Order %s routed by %s: %d production, %d packaging, %d warning(s), status %s",
            order.order_number, actor.email, len(production_entries),
            len(packaging_entries), len(warnings), order.status
        )

        return success_response({
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "production": [ProductionService.serialize_brief(e) for e in production_entries],
            "packaging": [PackagingService.serialize_brief(e) for e in packaging_entries],
            "messages": messages,
            "warnings": warnings,
        }, f"Order {order.order_number} routed")

    @classmethod
    def _route_item(cls, order: Order, item: OrderItem, product: Product,
                    actor: Actor, settings: FulfillmentSettings) -> Dict[str, Any]:
        quantity = item.quantity
        available = product.stock
        outcome = {"production": [], "packaging": [], "warnings": [], "message": ""}

        if available >= quantity:
            cls._take_from_stock(order, item, quantity, actor)
            outcome["packaging"].append(PackagingService.create_from_stock(order, item, quantity, actor))
            TrackingService.start(item, from_stock=quantity)
            outcome["message"] = f"{item.product_name}: {quantity} from stock"
            return outcome

        if not product.is_manufactured:
            warning = (
                f"{item.product_name}: insufficient stock ({available} of {quantity}) "
                f"and not manufactured, manual replenishment required"
            )
            logger.warning("Order %s: %s", order.order_number, warning)
            outcome["warnings"].append(warning)
            outcome["message"] = f"{item.product_name}: not routed"
            return outcome

        split = settings.split_partial_stock and available > 0
        to_produce = quantity - available if split else quantity

        entry, production_warnings = ProductionService.create_entry(
            product, to_produce, actor, order_item=item,
            notes=f"For order {order.order_number}",
        )
        outcome["production"].append(entry)
        outcome["warnings"].extend(production_warnings)

        from_stock = Decimal("0")
        if split:
            cls._take_from_stock(order, item, available, actor)
            outcome["packaging"].append(PackagingService.create_from_stock(order, item, available, actor))
            from_stock = available

        TrackingService.start(item, from_stock=from_stock, from_production=to_produce)

        if from_stock:
            outcome["message"] = f"{item.product_name}: {from_stock} from stock, {to_produce} to produce"
        else:
            outcome["message"] = f"{item.product_name}: {to_produce} to produce"
        return outcome

    @classmethod
    def _take_from_stock(cls, order: Order, item: OrderItem, quantity: Decimal, actor: Actor) -> StockMovement:
        return StockLedgerService.adjust(
            item.product_id,
            quantity,
            StockMovement.MovementType.SALE_OUT,
            actor,
            reference_type="order",
            reference_id=order.id,
            order=order,
            notes=f"Order {order.order_number}",
        )
