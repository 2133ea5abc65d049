import logging
from typing import Dict, Any, List, Optional, Tuple
from decimal import Decimal
from datetime import date
from django.db import transaction
from django.db.models import Q, Sum, Count
from django.utils import timezone

from stock.models import Product, ProductionEntry, PackagingEntry, StockMovement, FulfillmentSettings
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError,
    round_decimal, require_positive, require_id, generate_number
)
from stock.services.packaging_service import PackagingService, OPEN_STATUSES
from stock.services.recipe_service import RecipeService
from stock.services.stock_service import StockLedgerService
from stock.services.workflow import PRODUCTION_TRANSITIONS, ORDER_TRANSITIONS
from orders.models import Order, OrderItem
from orders.services.tracking_service import TrackingService

logger = logging.getLogger(__name__)


class ProductionService(BaseService):
    model = ProductionEntry

    @classmethod
    def serialize(cls, entry: ProductionEntry) -> Dict[str, Any]:
        order = entry.order_item.order if entry.order_item_id else None
        return {
            "id": entry.id,
            "production_number": entry.production_number,
            "production_type": entry.production_type,
            "order_item_id": entry.order_item_id,
            "order_id": order.id if order else None,
            "order_number": order.order_number if order else None,
            "client_name": order.client_name if order else None,
            "product_id": entry.product_id,
            "product_name": entry.product.name,
            "quantity_requested": str(entry.quantity_requested),
            "quantity_produced": str(entry.quantity_produced),
            "status": entry.status,
            "status_display": entry.get_status_display(),
            "next_actions": PRODUCTION_TRANSITIONS.events_from(entry.status),
            "start_date": entry.start_date.isoformat() if entry.start_date else None,
            "completion_date": entry.completion_date.isoformat() if entry.completion_date else None,
            "approved_at": entry.approved_at.isoformat() if entry.approved_at else None,
            "approved_by": entry.approved_by,
            "notes": entry.notes,
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat(),
        }

    @classmethod
    def serialize_brief(cls, entry: ProductionEntry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "production_number": entry.production_number,
            "production_type": entry.production_type,
            "product_name": entry.product.name,
            "quantity_requested": str(entry.quantity_requested),
            "quantity_produced": str(entry.quantity_produced),
            "status": entry.status,
            "status_display": entry.get_status_display(),
        }

    @classmethod
    def _queryset(cls, company_id: str):
        return ProductionEntry.objects.for_company(company_id).select_related(
            "product", "order_item__order"
        )

    @classmethod
    def list(cls,
             company_id: str,
             page: int = 1,
             per_page: int = 20,
             status: str = None,
             production_type: str = None,
             search: str = None,
             date_from: date = None,
             date_to: date = None) -> Dict[str, Any]:
        queryset = cls._queryset(company_id)

        if status:
            queryset = queryset.filter(status=status)

        if production_type == "internal":
            queryset = queryset.filter(order_item__isnull=True)
        elif production_type == "order":
            queryset = queryset.filter(order_item__isnull=False)
        elif production_type:
            raise ValidationError("type must be internal or order", "type")

        if search:
            queryset = queryset.filter(
                Q(product__name__icontains=search) |
                Q(production_number__icontains=search) |
                Q(order_item__order__order_number__icontains=search)
            )

        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)

        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        entries, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "production": [cls.serialize_brief(e) for e in entries],
            "pagination": pagination,
            "statuses": [{"value": c[0], "label": c[1]} for c in ProductionEntry.Status.choices],
        })

    @classmethod
    def get(cls, entry_id: int, company_id: str) -> Dict[str, Any]:
        entry = cls._queryset(company_id).filter(id=entry_id).first()
        if not entry:
            raise NotFoundError("Production entry", entry_id)

        data = cls.serialize(entry)
        data["packaging"] = [
            PackagingService.serialize_brief(p)
            for p in entry.packaging_entries.select_related("product", "order")
        ]
        return success_response({"production": data})

    @classmethod
    def stats(cls, company_id: str, date_from: date = None, date_to: date = None) -> Dict[str, Any]:
        queryset = ProductionEntry.objects.for_company(company_id)
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        by_status = {c[0]: 0 for c in ProductionEntry.Status.choices}
        for row in queryset.values("status").annotate(count=Count("id")):
            by_status[row["status"]] = row["count"]

        finished = queryset.filter(
            status__in=[ProductionEntry.Status.COMPLETED, ProductionEntry.Status.APPROVED]
        ).aggregate(
            requested=Sum("quantity_requested"),
            produced=Sum("quantity_produced"),
        )
        requested = finished["requested"] or Decimal("0")
        produced = finished["produced"] or Decimal("0")
        efficiency = (produced / requested * 100) if requested else Decimal("0")

        return success_response({
            "total": sum(by_status.values()),
            "by_status": by_status,
            "internal": queryset.filter(order_item__isnull=True).count(),
            "for_orders": queryset.filter(order_item__isnull=False).count(),
            "quantity_requested": str(requested),
            "quantity_produced": str(produced),
            "efficiency_percentage": str(round_decimal(efficiency, 2)),
        })

    @classmethod
    def create_entry(cls,
                     product: Product,
                     quantity: Decimal,
                     actor: Actor,
                     order_item: Optional[OrderItem] = None,
                     notes: str = "") -> Tuple[ProductionEntry, List[str]]:
        """
        Create a pending production entry and consume its ingredients.

        A failed ingredient deduction does not block the entry; it comes back
        as a warning.
        """
        entry = ProductionEntry.objects.create(
            company_id=product.company_id,
            production_number=generate_number("PRD", ProductionEntry, "production_number"),
            order_item=order_item,
            product=product,
            quantity_requested=quantity,
            notes=notes or "",
        )
        logger.info(
            "%s created: %s x %s (%s)",
            entry.production_number, quantity, product.name, entry.production_type
        )

        warnings = []
        if FulfillmentSettings.load().deduct_ingredients_on_production:
            deducted = RecipeService.deduct_ingredients(
                product.id, quantity, actor,
                reference_type="production", reference_id=entry.id,
            )
            if not deducted:
                warnings.append(
                    f"{entry.production_number}: ingredients for {quantity} x {product.name} "
                    f"could not be deducted, check ingredient stock"
                )
                logger.warning(warnings[-1])

        return entry, warnings

    @classmethod
    @transaction.atomic
    def create(cls,
               actor: Actor,
               product_id: int,
               quantity_requested: Any,
               order_item_id: int = None,
               notes: str = "") -> Dict[str, Any]:
        quantity = require_positive(quantity_requested, "quantity_requested")
        product_id = require_id(product_id, "product_id")
        order_item_id = require_id(order_item_id, "order_item_id") if order_item_id else None

        product = Product.objects.for_company(actor.company_id).filter(id=product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)

        if not product.is_manufactured:
            raise BusinessRuleError(f"{product.name} is not a manufactured product", "production.not_manufactured")

        item = None
        if order_item_id:
            item = OrderItem.objects.select_related("order").filter(
                id=order_item_id, order__company_id=actor.company_id
            ).first()
            if not item:
                raise NotFoundError("Order item", order_item_id)
            if item.product_id != product.id:
                raise ValidationError("Product does not match the order item", "product_id")
            if item.order.status == Order.Status.CANCELLED:
                raise BusinessRuleError("Cannot produce for a cancelled order", "production.order_cancelled")

        entry, warnings = cls.create_entry(product, quantity, actor, order_item=item, notes=notes)

        if item is not None:
            tracking = TrackingService.for_item(item)
            tracking.quantity_from_production += quantity
            tracking.save()

            order = Order.objects.select_for_update().get(id=item.order_id)
            if ORDER_TRANSITIONS.can(order.status, "route_to_production"):
                ORDER_TRANSITIONS.apply(order, "route_to_production")
                order.save(update_fields=["status", "updated_at"])

        return success_response({
            "id": entry.id,
            "production": cls.serialize(entry),
            "warnings": warnings,
        }, f"Production {entry.production_number} created")

    @classmethod
    @transaction.atomic
    def start(cls, entry_id: int, actor: Actor) -> Dict[str, Any]:
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PRODUCTION_TRANSITIONS.apply(entry, "start")
        entry.start_date = timezone.now()
        entry.save()

        return success_response({"production": cls.serialize(entry)}, "Production started")

    @classmethod
    @transaction.atomic
    def complete(cls, entry_id: int, actor: Actor,
                 quantity_produced: Any = None,
                 notes: str = "") -> Dict[str, Any]:
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PRODUCTION_TRANSITIONS.apply(entry, "complete")

        if quantity_produced is None:
            entry.quantity_produced = entry.quantity_requested
        else:
            entry.quantity_produced = require_positive(quantity_produced, "quantity_produced")

        entry.completion_date = timezone.now()
        if notes:
            entry.notes = f"{entry.notes}\n{notes}".strip()
        entry.save()

        return success_response({"production": cls.serialize(entry)}, "Production completed")

    @classmethod
    @transaction.atomic
    def approve(cls, entry_id: int, actor: Actor, quantity_produced: Any = None) -> Dict[str, Any]:
        """
        Approve a completed production entry.

        Order-linked production feeds packaging (an open packaging entry for
        this production is topped up, otherwise a new one is created) and the
        item's tracking row; internal production goes into stock. Any failure
        rolls the whole approval back.
        """
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PRODUCTION_TRANSITIONS.apply(entry, "approve")

        if quantity_produced is not None:
            entry.quantity_produced = require_positive(quantity_produced, "quantity_produced")
        require_positive(entry.quantity_produced, "quantity_produced")

        entry.approved_by = actor.email
        entry.approved_at = timezone.now()
        entry.save()

        if entry.is_internal:
            movement = StockLedgerService.adjust(
                entry.product_id,
                entry.quantity_produced,
                StockMovement.MovementType.PRODUCTION_IN,
                actor,
                reference_type="production",
                reference_id=entry.id,
                notes=f"Internal production {entry.production_number}",
            )
            result = {"stock": str(movement.quantity_after)}
        else:
            packaging = cls._feed_packaging(entry, actor)
            result = {"packaging": PackagingService.serialize(packaging)}

        logger.info(
            "%s approved by %s: %s x %s",
            entry.production_number, actor.email, entry.quantity_produced, entry.product.name
        )

        return success_response({
            "production": cls.serialize(entry),
            **result,
        }, "Production approved")

    @classmethod
    def _feed_packaging(cls, entry: ProductionEntry, actor: Actor) -> PackagingEntry:
        item = OrderItem.objects.select_related("order").get(id=entry.order_item_id)
        order = Order.objects.select_for_update().get(id=item.order_id)

        packaging = PackagingEntry.objects.select_for_update().filter(
            production=entry, status__in=OPEN_STATUSES
        ).order_by("id").first()
        if packaging:
            packaging.quantity_to_package += entry.quantity_produced
            packaging.save(update_fields=["quantity_to_package", "updated_at"])
        else:
            packaging = PackagingService.create_for_production(entry, actor)

        tracking = TrackingService.for_item(item)
        tracking.quantity_produced_approved += entry.quantity_produced
        TrackingService.refresh_status(tracking)
        tracking.save()

        if ORDER_TRANSITIONS.can(order.status, "production_approved"):
            ORDER_TRANSITIONS.apply(order, "production_approved")
            order.save(update_fields=["status", "updated_at"])

        return packaging

    @classmethod
    @transaction.atomic
    def reject(cls, entry_id: int, actor: Actor, reason: str = "") -> Dict[str, Any]:
        entry = cls.lock_or_404(entry_id, actor.company_id)
        PRODUCTION_TRANSITIONS.apply(entry, "reject")
        if reason:
            entry.notes = f"{entry.notes}\nRejected: {reason}".strip()
        entry.save()

        logger.info("%s rejected by %s", entry.production_number, actor.email)

        return success_response({"production": cls.serialize(entry)}, "Production rejected")
