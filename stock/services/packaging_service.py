import logging
from typing import Dict, Any, List, Optional
from decimal import Decimal
from datetime import date
from django.db import transaction
from django.db.models import Q, Sum, Count
from django.utils import timezone

from stock.models import Product, ProductionEntry, PackagingEntry, FulfillmentSettings
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError,
    to_decimal, round_decimal, require_positive, require_id, generate_number
)
from stock.services.workflow import PACKAGING_TRANSITIONS, ORDER_TRANSITIONS
from orders.models import Order, OrderItem, OrderItemTracking
from orders.services.tracking_service import TrackingService

logger = logging.getLogger(__name__)


OPEN_STATUSES = [
    PackagingEntry.Status.PENDING,
    PackagingEntry.Status.IN_PROGRESS,
    PackagingEntry.Status.COMPLETED,
]


class PackagingService(BaseService):
    model = PackagingEntry

    @classmethod
    def serialize(cls, entry: PackagingEntry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "packaging_number": entry.packaging_number,
            "origin": entry.origin,
            "production_id": entry.production_id,
            "production_number": entry.production.production_number if entry.production_id else None,
            "order_id": entry.order_id,
            "order_number": entry.order.order_number if entry.order_id else None,
            "order_item_id": entry.order_item_id,
            "client_id": entry.client_id,
            "client_name": entry.client_name,
            "product_id": entry.product_id,
            "product_name": entry.product.name,
            "quantity_to_package": str(entry.quantity_to_package),
            "quantity_packaged": str(entry.quantity_packaged),
            "status": entry.status,
            "status_display": entry.get_status_display(),
            "next_actions": PACKAGING_TRANSITIONS.events_from(entry.status),
            "quality_check": entry.quality_check,
            "packaged_at": entry.packaged_at.isoformat() if entry.packaged_at else None,
            "packaged_by": entry.packaged_by,
            "approved_at": entry.approved_at.isoformat() if entry.approved_at else None,
            "approved_by": entry.approved_by,
            "notes": entry.notes,
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat(),
        }

    @classmethod
    def serialize_brief(cls, entry: PackagingEntry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "packaging_number": entry.packaging_number,
            "origin": entry.origin,
            "order_number": entry.order.order_number if entry.order_id else None,
            "client_name": entry.client_name,
            "product_name": entry.product.name,
            "quantity_to_package": str(entry.quantity_to_package),
            "quantity_packaged": str(entry.quantity_packaged),
            "status": entry.status,
            "status_display": entry.get_status_display(),
        }

    @classmethod
    def _queryset(cls, company_id: str):
        return PackagingEntry.objects.for_company(company_id).select_related(
            "product", "order", "production"
        )

    @classmethod
    def list(cls,
             company_id: str,
             page: int = 1,
             per_page: int = 20,
             status: str = None,
             origin: str = None,
             search: str = None,
             order_number: str = None,
             date_from: date = None,
             date_to: date = None) -> Dict[str, Any]:
        queryset = cls._queryset(company_id)

        if status:
            queryset = queryset.filter(status=status)

        if origin == "stock":
            queryset = queryset.filter(production__isnull=True)
        elif origin == "production":
            queryset = queryset.filter(production__isnull=False)
        elif origin == "mixed":
            from_stock = set(
                queryset.filter(production__isnull=True, order__isnull=False)
                .values_list("order_id", flat=True)
            )
            from_production = set(
                queryset.filter(production__isnull=False, order__isnull=False)
                .values_list("order_id", flat=True)
            )
            queryset = queryset.filter(order_id__in=from_stock & from_production)
        elif origin:
            raise ValidationError("origin must be one of stock, production, mixed", "origin")

        if search:
            queryset = queryset.filter(
                Q(product__name__icontains=search) |
                Q(packaging_number__icontains=search) |
                Q(client_name__icontains=search)
            )

        if order_number:
            queryset = queryset.filter(order__order_number__icontains=order_number)

        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)

        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        entries, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "packaging": [cls.serialize_brief(e) for e in entries],
            "pagination": pagination,
            "statuses": [{"value": c[0], "label": c[1]} for c in PackagingEntry.Status.choices],
        })

    @classmethod
    def get(cls, entry_id: int, company_id: str) -> Dict[str, Any]:
        entry = cls._queryset(company_id).filter(id=entry_id).first()
        if not entry:
            raise NotFoundError("Packaging entry", entry_id)
        return success_response({"packaging": cls.serialize(entry)})

    @classmethod
    def stats(cls, company_id: str, date_from: date = None, date_to: date = None) -> Dict[str, Any]:
        queryset = PackagingEntry.objects.for_company(company_id)
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        by_status = {c[0]: 0 for c in PackagingEntry.Status.choices}
        for row in queryset.values("status").annotate(count=Count("id")):
            by_status[row["status"]] = row["count"]

        approved = queryset.filter(status=PackagingEntry.Status.APPROVED).aggregate(
            to_package=Sum("quantity_to_package"),
            packaged=Sum("quantity_packaged"),
        )
        to_package = approved["to_package"] or Decimal("0")
        packaged = approved["packaged"] or Decimal("0")
        efficiency = (packaged / to_package * 100) if to_package else Decimal("0")

        return success_response({
            "total": sum(by_status.values()),
            "by_status": by_status,
            "from_stock": queryset.filter(production__isnull=True).count(),
            "from_production": queryset.filter(production__isnull=False).count(),
            "approved_quantity_to_package": str(to_package),
            "approved_quantity_packaged": str(packaged),
            "efficiency_percentage": str(round_decimal(efficiency, 2)),
        })

    @classmethod
    def create_from_stock(cls, order: Order, item: OrderItem, quantity: Decimal, actor: Actor) -> PackagingEntry:
        entry = PackagingEntry.objects.create(
            company_id=order.company_id,
            packaging_number=generate_number("PKG", PackagingEntry, "packaging_number"),
            order=order,
            order_item=item,
            client_id=order.client_id,
            client_name=order.client_name,
            product_id=item.product_id,
            quantity_to_package=quantity,
            notes=f"From stock for {order.order_number}",
        )
        logger.info("%s created from stock: %s x %s", entry.packaging_number, quantity, item.product_name)
        return entry

    @classmethod
    def create_for_production(cls, production: ProductionEntry, actor: Actor) -> PackagingEntry:
        item = production.order_item
        order = item.order
        entry = PackagingEntry.objects.create(
            company_id=production.company_id,
            packaging_number=generate_number("PKG", PackagingEntry, "packaging_number"),
            production=production,
            order=order,
            order_item=item,
            client_id=order.client_id,
            client_name=order.client_name,
            product_id=production.product_id,
            quantity_to_package=production.quantity_produced,
            notes=f"From production {production.production_number}",
        )
        logger.info(
            "%s created from %s: %s x %s",
            entry.packaging_number, production.production_number,
            production.quantity_produced, production.product.name
        )
        return entry

    @classmethod
    @transaction.atomic
    def create(cls,
               actor: Actor,
               product_id: int,
               quantity_to_package: Any,
               order_id: int = None,
               order_item_id: int = None,
               production_id: int = None,
               notes: str = "") -> Dict[str, Any]:
        quantity = require_positive(quantity_to_package, "quantity_to_package")
        product_id = require_id(product_id, "product_id")
        order_id = require_id(order_id, "order_id") if order_id else None
        order_item_id = require_id(order_item_id, "order_item_id") if order_item_id else None
        production_id = require_id(production_id, "production_id") if production_id else None

        product = Product.objects.for_company(actor.company_id).filter(id=product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)

        production = None
        order = None
        item = None

        if production_id:
            production = ProductionEntry.objects.for_company(actor.company_id).filter(id=production_id).first()
            if not production:
                raise NotFoundError("Production entry", production_id)
            if production.status == ProductionEntry.Status.REJECTED:
                raise BusinessRuleError("Cannot package a rejected production", "packaging.production_rejected")
            if production.product_id != product.id:
                raise ValidationError("Product does not match the production entry", "product_id")
            item = production.order_item

        if order_item_id and item is None:
            item = OrderItem.objects.filter(id=order_item_id, order__company_id=actor.company_id).first()
            if not item:
                raise NotFoundError("Order item", order_item_id)

        if item is not None:
            if item.product_id != product.id:
                raise ValidationError("Product does not match the order item", "product_id")
            order = item.order
            if order_id and order.id != order_id:
                raise ValidationError("Order item does not belong to the order", "order_item_id")
        elif order_id:
            order = Order.objects.for_company(actor.company_id).filter(id=order_id).first()
            if not order:
                raise NotFoundError("Order", order_id)

        if order is not None and order.status == Order.Status.CANCELLED:
            raise BusinessRuleError("Cannot package for a cancelled order", "packaging.order_cancelled")

        entry = PackagingEntry.objects.create(
            company_id=actor.company_id,
            packaging_number=generate_number("PKG", PackagingEntry, "packaging_number"),
            production=production,
            order=order,
            order_item=item,
            client_id=order.client_id if order else None,
            client_name=order.client_name if order else "",
            product=product,
            quantity_to_package=quantity,
            notes=notes or "",
        )

        if order is not None and ORDER_TRANSITIONS.can(order.status, "route_to_packaging"):
            ORDER_TRANSITIONS.apply(order, "route_to_packaging")
            order.save(update_fields=["status", "updated_at"])

        return success_response({
            "id": entry.id,
            "packaging": cls.serialize(entry),
        }, f"Packaging {entry.packaging_number} created")

    @classmethod
    def _apply_input(cls, entry: PackagingEntry, quantity_packaged: Any, quality_check: Optional[bool]):
        if quantity_packaged is not None:
            quantity = to_decimal(quantity_packaged, None)
            if quantity is None or not quantity.is_finite() or quantity < 0:
                raise ValidationError("quantity_packaged must be zero or greater", "quantity_packaged")
            entry.quantity_packaged = quantity
        if quality_check is not None:
            entry.quality_check = bool(quality_check)

    @classmethod
    @transaction.atomic
    def start(cls, entry_id: int, actor: Actor,
              quantity_packaged: Any = None,
              quality_check: bool = None) -> Dict[str, Any]:
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PACKAGING_TRANSITIONS.apply(entry, "start")
        cls._apply_input(entry, quantity_packaged, quality_check)
        entry.packaged_by = actor.email
        entry.packaged_at = timezone.now()
        entry.save()

        return success_response({"packaging": cls.serialize(entry)}, "Packaging started")

    @classmethod
    @transaction.atomic
    def complete(cls, entry_id: int, actor: Actor,
                 quantity_packaged: Any = None,
                 quality_check: bool = None) -> Dict[str, Any]:
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PACKAGING_TRANSITIONS.apply(entry, "complete")
        cls._apply_input(entry, quantity_packaged, quality_check)
        if quantity_packaged is None and not entry.quantity_packaged:
            entry.quantity_packaged = entry.quantity_to_package
        entry.save()

        return success_response({"packaging": cls.serialize(entry)}, "Packaging completed")

    @classmethod
    @transaction.atomic
    def approve(cls, entry_id: int, actor: Actor,
                quantity_packaged: Any = None,
                quality_check: bool = None) -> Dict[str, Any]:
        """
        Approve a packaging entry and push the approved quantity to the order.

        The quantity is accumulated on the item's tracking row, a short item
        is reduced once no other work is left for it, and the order is then
        offered to the sale releaser.
        """
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PACKAGING_TRANSITIONS.apply(entry, "approve")
        cls._apply_input(entry, quantity_packaged, quality_check)
        require_positive(entry.quantity_packaged, "quantity_packaged")

        entry.approved_by = actor.email
        entry.approved_at = timezone.now()
        entry.save()

        warnings = []
        settled = False
        item = cls._resolve_order_item(entry)

        if entry.quantity_packaged < entry.quantity_to_package:
            warnings.append(
                f"{entry.packaging_number}: approved {entry.quantity_packaged} "
                f"of {entry.quantity_to_package} to package"
            )
            logger.warning(warnings[-1])

        if item is not None:
            tracking = TrackingService.for_item(item)
            tracking.quantity_packaged_approved += entry.quantity_packaged
            TrackingService.refresh_status(tracking)
            tracking.save()

            warnings.extend(cls._accept_shortfall(item, tracking))

            from orders.services.sale_service import SaleService
            settled = SaleService.try_settle_order(item.order_id, actor)

        logger.info("%s approved by %s (order settled: %s)", entry.packaging_number, actor.email, settled)

        return success_response({
            "packaging": cls.serialize(entry),
            "order_settled": settled,
            "warnings": warnings,
        }, "Packaging approved")

    @classmethod
    @transaction.atomic
    def reject(cls, entry_id: int, actor: Actor, reason: str = "") -> Dict[str, Any]:
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PACKAGING_TRANSITIONS.apply(entry, "reject")
        if reason:
            entry.notes = f"{entry.notes}\nRejected: {reason}".strip()
        entry.save()

        logger.info("%s rejected by %s", entry.packaging_number, actor.email)

        return success_response({"packaging": cls.serialize(entry)}, "Packaging rejected")

    @classmethod
    def _resolve_order_item(cls, entry: PackagingEntry) -> Optional[OrderItem]:
        if entry.production_id and entry.production.order_item_id:
            return entry.production.order_item
        if entry.order_item_id:
            return entry.order_item
        if entry.order_id:
            return OrderItem.objects.filter(order_id=entry.order_id, product_id=entry.product_id).first()
        return None

    @classmethod
    def _accept_shortfall(cls, item: OrderItem, tracking: OrderItemTracking) -> List[str]:
        """
        Shrink an item to what was actually approved once nothing else can
        still arrive for it.
        """
        if tracking.is_fully_packaged:
            return []

        if not FulfillmentSettings.load().accept_packaging_shortfall:
            return []

        open_packaging = PackagingEntry.objects.filter(
            Q(order_item=item) | Q(production__order_item=item),
            status__in=OPEN_STATUSES,
        ).exists()
        open_production = ProductionEntry.objects.filter(
            order_item=item,
            status__in=[
                ProductionEntry.Status.PENDING,
                ProductionEntry.Status.IN_PROGRESS,
                ProductionEntry.Status.COMPLETED,
            ],
        ).exists()
        if open_packaging or open_production:
            return []

        requested = item.quantity
        approved = tracking.quantity_packaged_approved

        item.quantity = approved
        item.save(update_fields=["quantity", "updated_at"])

        tracking.quantity_target = approved
        TrackingService.refresh_status(tracking)
        tracking.save()

        order = item.order
        order.recalculate_total()
        order.save(update_fields=["total_amount", "updated_at"])

        message = (
            f"{item.product_name}: only {approved} of {requested} approved, "
            f"item quantity reduced to {approved}"
        )
        logger.warning("Order %s: %s", order.order_number, message)
        return [message]
