import logging
from typing import Dict, Any, Optional
from decimal import Decimal
from django.db import transaction
from django.db.models import F

from stock.models import Product, StockMovement, FulfillmentSettings
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, InsufficientStockError,
    to_decimal, generate_number
)

logger = logging.getLogger(__name__)


OUTGOING_TYPES = {
    StockMovement.MovementType.ADJUSTMENT_MINUS,
    StockMovement.MovementType.SALE_OUT,
    StockMovement.MovementType.PRODUCTION_OUT,
}


class StockLedgerService(BaseService):
    """
    Single entry point for changing Product.stock.

    Every mutation locks the product row, applies the delta and appends a
    StockMovement. Stock never goes below zero: an over-deduction is either
    clamped (FulfillmentSettings.clamp_negative_stock) or refused with
    InsufficientStockError.
    """
    model = Product

    @classmethod
    def serialize_movement(cls, movement: StockMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "movement_number": movement.movement_number,
            "product_id": movement.product_id,
            "product_name": movement.product.name,
            "movement_type": movement.movement_type,
            "movement_type_display": movement.get_movement_type_display(),
            "quantity": str(movement.quantity),
            "applied_quantity": str(movement.applied_quantity),
            "quantity_before": str(movement.quantity_before),
            "quantity_after": str(movement.quantity_after),
            "clamped": movement.was_clamped,
            "reference_type": movement.reference_type,
            "reference_id": movement.reference_id,
            "order_id": movement.order_id,
            "user_email": movement.user_email,
            "notes": movement.notes,
            "created_at": movement.created_at.isoformat(),
        }

    @classmethod
    def get_stock(cls, product_id: int, company_id: str = None) -> Decimal:
        product = cls.get_or_404(product_id, company_id)
        return product.stock

    @classmethod
    @transaction.atomic
    def adjust(cls,
               product_id: int,
               quantity: Decimal,
               movement_type: str,
               actor: Actor,
               reference_type: str = "",
               reference_id: int = None,
               order=None,
               notes: str = "",
               clamp: Optional[bool] = None) -> StockMovement:
        """
        Apply a signed delta to a product's stock.

        Outgoing movement types always subtract, incoming ones always add,
        whatever the sign of `quantity`.
        """
        valid_types = [c[0] for c in StockMovement.MovementType.choices]
        if movement_type not in valid_types:
            raise ValidationError(f"Invalid movement type. Valid: {valid_types}", "movement_type")

        quantity = to_decimal(quantity)
        delta = -abs(quantity) if movement_type in OUTGOING_TYPES else abs(quantity)

        product = Product.objects.select_for_update().filter(id=product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)

        before = product.stock
        after = before + delta

        if after < 0:
            if clamp is None:
                clamp = FulfillmentSettings.load().clamp_negative_stock
            if not clamp:
                raise InsufficientStockError(product.name, abs(delta), before)
            logger.warning(
                "Clamped %s of %s: requested %s, only %s in stock",
                movement_type, product.name, abs(delta), before
            )
            after = Decimal("0")

        product.stock = after
        product.save(update_fields=["stock", "updated_at"])

        movement = StockMovement.objects.create(
            company_id=product.company_id,
            movement_number=generate_number("MOV", StockMovement, "movement_number"),
            product=product,
            movement_type=movement_type,
            quantity=delta,
            applied_quantity=after - before,
            quantity_before=before,
            quantity_after=after,
            reference_type=reference_type or "",
            reference_id=reference_id,
            order=order,
            user_email=actor.email if actor else "",
            notes=notes,
        )

        logger.info(
            "%s %s %s: %s -> %s",
            movement.movement_number, movement_type, product.name, before, after
        )
        return movement

    @classmethod
    @transaction.atomic
    def manual_adjust(cls,
                      product_id: int,
                      quantity: Any,
                      actor: Actor,
                      notes: str = "") -> Dict[str, Any]:
        product = cls.get_or_404(product_id, actor.company_id)
        quantity = to_decimal(quantity, None)
        if quantity is None or not quantity.is_finite() or quantity == 0:
            raise ValidationError("quantity must be a non-zero number", "quantity")

        movement_type = (
            StockMovement.MovementType.ADJUSTMENT_PLUS if quantity > 0
            else StockMovement.MovementType.ADJUSTMENT_MINUS
        )
        # Manual corrections never clamp silently
        movement = cls.adjust(
            product.id, quantity, movement_type, actor,
            reference_type="manual", notes=notes, clamp=False,
        )

        return success_response({
            "movement": cls.serialize_movement(movement),
            "stock": str(movement.quantity_after),
        }, "Stock adjusted")

    @classmethod
    @transaction.atomic
    def set_stock(cls,
                  product_id: int,
                  new_stock: Any,
                  actor: Actor,
                  notes: str = "") -> Dict[str, Any]:
        product = cls.get_or_404(product_id, actor.company_id)
        new_stock = to_decimal(new_stock, None)
        if new_stock is None or not new_stock.is_finite() or new_stock < 0:
            raise ValidationError("stock must be zero or greater", "stock")

        difference = new_stock - product.stock
        if difference == 0:
            return success_response({"stock": str(product.stock)}, "Stock unchanged")

        return cls.manual_adjust(product.id, difference, actor, notes or "Stock set")

    @classmethod
    def list_movements(cls,
                       company_id: str,
                       product_id: int = None,
                       movement_type: str = None,
                       order_id: int = None,
                       page: int = 1,
                       per_page: int = 50) -> Dict[str, Any]:
        queryset = StockMovement.objects.for_company(company_id).select_related("product")

        if product_id:
            queryset = queryset.filter(product_id=product_id)

        if movement_type:
            queryset = queryset.filter(movement_type=movement_type)

        if order_id:
            queryset = queryset.filter(order_id=order_id)

        movements, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "movements": [cls.serialize_movement(m) for m in movements],
            "pagination": pagination,
            "movement_types": [{"value": c[0], "label": c[1]} for c in StockMovement.MovementType.choices],
        })

    @classmethod
    def get_low_stock(cls, company_id: str) -> Dict[str, Any]:
        settings = FulfillmentSettings.load()
        if not settings.low_stock_alert_enabled:
            return success_response({"products": [], "count": 0, "alerts_enabled": False})

        products = list(
            Product.objects.for_company(company_id)
            .active()
            .filter(min_stock__gt=0, stock__lte=F("min_stock"))
            .order_by("name")
        )

        return success_response({
            "products": [
                {
                    "id": p.id,
                    "name": p.name,
                    "sku": p.sku,
                    "stock": str(p.stock),
                    "min_stock": str(p.min_stock),
                    "shortage": str(p.min_stock - p.stock),
                }
                for p in products
            ],
            "count": len(products),
            "alerts_enabled": True,
        })
