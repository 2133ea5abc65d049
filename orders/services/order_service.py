import logging
from typing import Dict, Any, List
from decimal import Decimal
from django.db import transaction
from django.db.models import Q, Count

from orders.models import Client, Order, OrderItem, OrderItemTracking, Sale
from orders.services.tracking_service import TrackingService
from stock.models import Product, ProductionEntry, PackagingEntry, StockMovement, FulfillmentSettings
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError,
    to_decimal, require_positive, generate_number
)
from stock.services.stock_service import StockLedgerService
from stock.services.workflow import ORDER_TRANSITIONS, SALE_TRANSITIONS

logger = logging.getLogger(__name__)


STATUS_EVENTS = {
    "mark-packaged": "mark_packaged",
    "dispatch": "dispatch",
    "deliver": "deliver",
    "cancel": "cancel",
}


class OrderService(BaseService):
    model = Order

    @classmethod
    def serialize(cls, order: Order) -> Dict[str, Any]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "client_id": order.client_id,
            "client_name": order.client_name,
            "status": order.status,
            "status_display": order.get_status_display(),
            "next_actions": ORDER_TRANSITIONS.events_from(order.status),
            "total_amount": str(order.total_amount),
            "notes": order.notes,
            "created_by": order.created_by,
            "created_at": order.created_at.isoformat(),
            "updated_at": order.updated_at.isoformat(),
        }

    @classmethod
    def serialize_item(cls, item: OrderItem) -> Dict[str, Any]:
        try:
            tracking = TrackingService.serialize(item.tracking)
        except OrderItemTracking.DoesNotExist:
            tracking = None

        return {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": str(item.quantity),
            "unit_price": str(item.unit_price),
            "total_price": str(item.total_price),
            "tracking": tracking,
        }

    @classmethod
    def list_orders(cls,
                    company_id: str,
                    page: int = 1,
                    per_page: int = 20,
                    status: str = None,
                    client_id: int = None,
                    search: str = None) -> Dict[str, Any]:
        queryset = Order.objects.for_company(company_id).annotate(items_count=Count("items"))

        if status:
            queryset = queryset.filter(status=status)

        if client_id:
            queryset = queryset.filter(client_id=client_id)

        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) |
                Q(client_name__icontains=search)
            )

        orders, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "orders": [{**cls.serialize(o), "items_count": o.items_count} for o in orders],
            "pagination": pagination,
            "statuses": [{"value": c[0], "label": c[1]} for c in Order.Status.choices],
        })

    @classmethod
    def get_order(cls, order_id: int, company_id: str) -> Dict[str, Any]:
        from stock.services.packaging_service import PackagingService
        from stock.services.production_service import ProductionService
        from orders.services.sale_service import SaleService

        order = cls.get_or_404(order_id, company_id)
        items = order.items.select_related("tracking")

        production = ProductionEntry.objects.filter(order_item__order=order).select_related("product")
        packaging = PackagingEntry.objects.filter(order=order).select_related("product", "order")
        sale = Sale.objects.filter(order=order).first()

        data = cls.serialize(order)
        data.update({
            "items": [cls.serialize_item(i) for i in items],
            "production": [ProductionService.serialize_brief(p) for p in production],
            "packaging": [PackagingService.serialize_brief(p) for p in packaging],
            "sale": SaleService.serialize(sale) if sale else None,
        })
        return success_response({"order": data})

    @classmethod
    def _clean_items(cls, items: List[Dict], company_id: str) -> List[Dict]:
        if not items:
            raise ValidationError("At least one item is required", "items")

        cleaned = []
        for index, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{index}] must be an object", "items")

            product_id = raw.get("product_id")
            if not product_id:
                raise ValidationError(f"items[{index}].product_id is required", "product_id")

            product = Product.objects.for_company(company_id).active().filter(id=product_id).first()
            if not product:
                raise NotFoundError("Product", product_id)

            quantity = require_positive(raw.get("quantity"), "quantity")

            unit_price = raw.get("unit_price")
            if unit_price is None:
                unit_price = product.price
            else:
                unit_price = to_decimal(unit_price, None)
                if unit_price is None or not unit_price.is_finite() or unit_price < 0:
                    raise ValidationError("unit_price must be zero or greater", "unit_price")

            cleaned.append({"product": product, "quantity": quantity, "unit_price": unit_price})
        return cleaned

    @classmethod
    @transaction.atomic
    def create_order(cls,
                     actor: Actor,
                     items: List[Dict],
                     client_id: int = None,
                     client_name: str = "",
                     notes: str = "") -> Dict[str, Any]:
        """
        Create a pending order.

        Everything is validated before the first write. With
        auto_route_on_create on, the new order is routed straight away and the
        routing result is returned alongside it.
        """
        cleaned = cls._clean_items(items, actor.company_id)

        client = None
        if client_id:
            client = Client.objects.for_company(actor.company_id).filter(id=client_id).first()
            if not client:
                raise NotFoundError("Client", client_id)
            client_name = client.name

        order = Order.objects.create(
            company_id=actor.company_id,
            order_number=generate_number("ORD", Order, "order_number"),
            client=client,
            client_name=(client_name or "").strip(),
            notes=notes or "",
            created_by=actor.email,
        )

        total = Decimal("0")
        for line in cleaned:
            item = OrderItem.objects.create(
                order=order,
                product=line["product"],
                product_name=line["product"].name,
                quantity=line["quantity"],
                unit_price=line["unit_price"],
            )
            total += item.total_price

        order.total_amount = total
        order.save(update_fields=["total_amount", "updated_at"])

        logger.info(
            "Order %s created by %s: %d item(s), total %s",
            order.order_number, actor.email, len(cleaned), total
        )

        data = {"id": order.id, "order": cls.serialize(order)}

        if FulfillmentSettings.load().auto_route_on_create:
            from stock.services.order_service import OrderRoutingService
            data["routing"] = OrderRoutingService.route_order(order.id, actor)
            order.refresh_from_db()
            data["order"] = cls.serialize(order)

        return success_response(data, f"Order {order.order_number} created")

    @classmethod
    @transaction.atomic
    def change_status(cls, order_id: int, event: str, actor: Actor, reason: str = "") -> Dict[str, Any]:
        if event not in STATUS_EVENTS.values():
            raise ValidationError(f"Invalid action. Valid: {list(STATUS_EVENTS)}", "action")

        order = cls.lock_or_404(order_id, actor.company_id)
        previous = order.status
        ORDER_TRANSITIONS.apply(order, event)

        returned = []
        if event == "cancel":
            returned = cls._unwind(order, actor, reason)
            if reason:
                order.notes = f"{order.notes}\nCancelled: {reason}".strip()

        order.save(update_fields=["status", "notes", "updated_at"])

        logger.info(
            "Order %s %s -> %s by %s", order.order_number, previous, order.status, actor.email
        )

        data = {"order": cls.serialize(order)}
        if event == "cancel":
            data["returned_to_stock"] = returned
        return success_response(data, f"Order {order.order_number} {order.get_status_display().lower()}")

    @classmethod
    def _unwind(cls, order: Order, actor: Actor, reason: str) -> List[Dict[str, Any]]:
        """
        Reverse what routing did for a cancelled order: finished goods taken
        from stock go back, open shop-floor work is rejected and an open
        sale is cancelled.
        """
        already_returned = StockMovement.objects.filter(
            order=order, movement_type=StockMovement.MovementType.RETURN_IN
        ).exists()

        returned = []
        if not already_returned:
            taken = StockMovement.objects.filter(
                order=order, movement_type=StockMovement.MovementType.SALE_OUT
            ).order_by("id")
            for movement in taken:
                quantity = -movement.applied_quantity
                if quantity <= 0:
                    continue
                back = StockLedgerService.adjust(
                    movement.product_id,
                    quantity,
                    StockMovement.MovementType.RETURN_IN,
                    actor,
                    reference_type="order",
                    reference_id=order.id,
                    order=order,
                    notes=f"Order {order.order_number} cancelled",
                )
                returned.append({"product_id": back.product_id, "quantity": str(quantity)})

        note = f"Order {order.order_number} cancelled"
        if reason:
            note = f"{note}: {reason}"

        for entry in ProductionEntry.objects.select_for_update().filter(
            order_item__order=order,
            status__in=[
                ProductionEntry.Status.PENDING,
                ProductionEntry.Status.IN_PROGRESS,
                ProductionEntry.Status.COMPLETED,
            ],
        ):
            entry.status = ProductionEntry.Status.REJECTED
            entry.notes = f"{entry.notes}\n{note}".strip()
            entry.save(update_fields=["status", "notes", "updated_at"])

        for entry in PackagingEntry.objects.select_for_update().filter(
            order=order,
            status__in=[
                PackagingEntry.Status.PENDING,
                PackagingEntry.Status.IN_PROGRESS,
                PackagingEntry.Status.COMPLETED,
            ],
        ):
            entry.status = PackagingEntry.Status.REJECTED
            entry.notes = f"{entry.notes}\n{note}".strip()
            entry.save(update_fields=["status", "notes", "updated_at"])

        sale = Sale.objects.select_for_update().filter(order=order).exclude(status=Sale.Status.CANCELLED).first()
        if sale is not None:
            if not SALE_TRANSITIONS.can(sale.status, "cancel"):
                raise BusinessRuleError(
                    f"Sale {sale.sale_number} is {sale.status} and cannot be cancelled", "order.cancel"
                )
            SALE_TRANSITIONS.apply(sale, "cancel")
            sale.save(update_fields=["status", "updated_at"])

        return returned
