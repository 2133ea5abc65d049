import logging
from typing import Dict, Any, Optional
from decimal import Decimal
from django.db import transaction, IntegrityError
from django.db.models import Q
from django.utils import timezone

from orders.models import Order, OrderItemTracking, Sale
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset,
    NotFoundError, BusinessRuleError, generate_number
)
from stock.services.workflow import ORDER_TRANSITIONS, SALE_TRANSITIONS

logger = logging.getLogger(__name__)


SETTLED_STATUSES = [
    Order.Status.RELEASED_FOR_SALE,
    Order.Status.SALE_CONFIRMED,
    Order.Status.IN_DELIVERY,
    Order.Status.DELIVERED,
]


class SaleService(BaseService):
    model = Sale

    @classmethod
    def serialize(cls, sale: Sale) -> Dict[str, Any]:
        return {
            "id": sale.id,
            "sale_number": sale.sale_number,
            "order_id": sale.order_id,
            "order_number": sale.order.order_number,
            "client_id": sale.client_id,
            "client_name": sale.client_name,
            "total_amount": str(sale.total_amount),
            "status": sale.status,
            "status_display": sale.get_status_display(),
            "next_actions": SALE_TRANSITIONS.events_from(sale.status),
            "confirmed_by": sale.confirmed_by,
            "confirmed_at": sale.confirmed_at.isoformat() if sale.confirmed_at else None,
            "invoice_number": sale.invoice_number,
            "invoice_date": sale.invoice_date.isoformat() if sale.invoice_date else None,
            "notes": sale.notes,
            "created_at": sale.created_at.isoformat(),
        }

    @classmethod
    def list(cls,
             company_id: str,
             page: int = 1,
             per_page: int = 20,
             status: str = None,
             search: str = None) -> Dict[str, Any]:
        queryset = Sale.objects.for_company(company_id).select_related("order")

        if status:
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(
                Q(sale_number__icontains=search) |
                Q(client_name__icontains=search) |
                Q(order__order_number__icontains=search)
            )

        sales, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "sales": [cls.serialize(s) for s in sales],
            "pagination": pagination,
            "statuses": [{"value": c[0], "label": c[1]} for c in Sale.Status.choices],
        })

    @classmethod
    def get(cls, sale_id: int, company_id: str) -> Dict[str, Any]:
        sale = Sale.objects.for_company(company_id).select_related("order").filter(id=sale_id).first()
        if not sale:
            raise NotFoundError("Sale", sale_id)
        return success_response({"sale": cls.serialize(sale)})

    @classmethod
    @transaction.atomic
    def try_settle_order(cls, order_id: int, actor: Optional[Actor] = None) -> bool:
        """
        Release an order for sale once every item is fully packaged.

        Every item needs a tracking row whose approved packaged quantity has
        reached its target. When that holds, item quantities and totals are
        aligned with what was approved (never above what was ordered), the
        order total is rewritten, the order moves to released_for_sale and a
        single pending Sale is created. Calling this again for a settled order
        returns True without creating anything.
        """
        order = Order.objects.select_for_update().filter(id=order_id).first()
        if not order or order.status == Order.Status.CANCELLED:
            return False

        items = list(order.items.all())
        if not items:
            return False

        trackings = {
            t.order_item_id: t
            for t in OrderItemTracking.objects.filter(order_item__order=order)
        }
        for item in items:
            tracking = trackings.get(item.id)
            if tracking is None or tracking.quantity_packaged_approved < tracking.quantity_target:
                return False

        if order.status not in SETTLED_STATUSES:
            if not ORDER_TRANSITIONS.can(order.status, "release_for_sale"):
                logger.warning(
                    "Order %s fully packaged but cannot be released from %s",
                    order.order_number, order.status
                )
                return False

            total = Decimal("0")
            for item in items:
                approved = min(trackings[item.id].quantity_packaged_approved, item.quantity)
                if approved != item.quantity:
                    item.quantity = approved
                item.save(update_fields=["quantity", "total_price", "updated_at"])
                total += item.total_price

            order.total_amount = total
            ORDER_TRANSITIONS.apply(order, "release_for_sale")
            order.save(update_fields=["status", "total_amount", "updated_at"])

        sale, created = cls._get_or_create_sale(order)
        if created:
            logger.info(
                "Order %s released for sale as %s (%s) by %s",
                order.order_number, sale.sale_number, sale.total_amount,
                actor.email if actor else "system"
            )
        return True

    @classmethod
    def _get_or_create_sale(cls, order: Order):
        defaults = {
            "company_id": order.company_id,
            "sale_number": generate_number("V", Sale, "sale_number"),
            "client_id": order.client_id,
            "client_name": order.client_name,
            "total_amount": order.total_amount,
        }
        try:
            with transaction.atomic():
                return Sale.objects.get_or_create(order=order, defaults=defaults)
        except IntegrityError:
            # Lost a race against a concurrent settle
            return Sale.objects.get(order=order), False

    @classmethod
    @transaction.atomic
    def confirm(cls, sale_id: int, actor: Actor) -> Dict[str, Any]:
        sale = cls.lock_or_404(sale_id, actor.company_id)
        SALE_TRANSITIONS.apply(sale, "confirm")
        sale.confirmed_by = actor.email
        sale.confirmed_at = timezone.now()
        sale.save()

        order = Order.objects.select_for_update().get(id=sale.order_id)
        if ORDER_TRANSITIONS.can(order.status, "confirm_sale"):
            ORDER_TRANSITIONS.apply(order, "confirm_sale")
            order.save(update_fields=["status", "updated_at"])

        logger.info("%s confirmed by %s", sale.sale_number, actor.email)

        return success_response({"sale": cls.serialize(sale)}, "Sale confirmed")

    @classmethod
    @transaction.atomic
    def invoice(cls, sale_id: int, actor: Actor, invoice_number: str = None) -> Dict[str, Any]:
        sale = cls.lock_or_404(sale_id, actor.company_id)
        SALE_TRANSITIONS.apply(sale, "invoice")
        sale.invoice_number = invoice_number or generate_number("NF", Sale, "invoice_number")
        sale.invoice_date = timezone.now()
        sale.save()

        logger.info("%s invoiced as %s by %s", sale.sale_number, sale.invoice_number, actor.email)

        return success_response({"sale": cls.serialize(sale)}, "Sale invoiced")

    @classmethod
    @transaction.atomic
    def cancel(cls, sale_id: int, actor: Actor, reason: str = "") -> Dict[str, Any]:
        """
        Cancel a sale together with its order.

        Cancelling the order returns its stock and cancels the sale. An order
        already dispatched cannot be cancelled, and neither can its sale.
        """
        from orders.services.order_service import OrderService

        sale = cls.get_or_404(sale_id, actor.company_id)
        if not SALE_TRANSITIONS.can(sale.status, "cancel"):
            raise BusinessRuleError(f"Cannot cancel sale in {sale.status} status", "sale.cancel")

        OrderService.change_status(
            sale.order_id, "cancel", actor, reason=reason or f"Sale {sale.sale_number} cancelled"
        )

        sale.refresh_from_db()
        if reason:
            sale.notes = f"{sale.notes}\nCancelled: {reason}".strip()
            sale.save(update_fields=["notes", "updated_at"])

        logger.info("%s cancelled by %s", sale.sale_number, actor.email)

        return success_response({"sale": cls.serialize(sale)}, "Sale cancelled")
