from typing import Dict, Any
from decimal import Decimal
from django.db import transaction
from django.db.models import Q

from stock.models import Product
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset,
    ValidationError, to_decimal
)


class ProductService(BaseService):
    model = Product

    @classmethod
    def serialize(cls, product: Product) -> Dict[str, Any]:
        return {
            "id": product.id,
            "name": product.name,
            "sku": product.sku,
            "unit": product.unit,
            "price": str(product.price),
            "stock": str(product.stock),
            "min_stock": str(product.min_stock),
            "is_low_stock": product.is_low_stock,
            "is_manufactured": product.is_manufactured,
            "is_active": product.is_active,
            "created_at": product.created_at.isoformat(),
            "updated_at": product.updated_at.isoformat(),
        }

    @classmethod
    def list(cls,
             company_id: str,
             page: int = 1,
             per_page: int = 20,
             search: str = None,
             is_manufactured: bool = None,
             include_inactive: bool = False) -> Dict[str, Any]:
        queryset = Product.objects.for_company(company_id)

        if not include_inactive:
            queryset = queryset.active()

        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(sku__icontains=search))

        if is_manufactured is not None:
            queryset = queryset.filter(is_manufactured=is_manufactured)

        products, pagination = paginate_queryset(queryset.order_by("name"), page, per_page)

        return success_response({
            "products": [cls.serialize(p) for p in products],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, product_id: int, company_id: str) -> Dict[str, Any]:
        product = cls.get_or_404(product_id, company_id)
        from .recipe_service import RecipeService

        data = cls.serialize(product)
        data["recipe"] = RecipeService.serialize_lines(product)
        return success_response({"product": data})

    @classmethod
    def _validate_sku(cls, sku: str, company_id: str, exclude_id: int = None):
        if not sku:
            return
        queryset = Product.objects.for_company(company_id).filter(sku=sku)
        if exclude_id:
            queryset = queryset.exclude(id=exclude_id)
        if queryset.exists():
            raise ValidationError(f"SKU '{sku}' already exists", "sku")

    @classmethod
    @transaction.atomic
    def create(cls,
               actor: Actor,
               name: str,
               sku: str = "",
               unit: str = "un",
               price: Decimal = Decimal("0"),
               stock: Decimal = Decimal("0"),
               min_stock: Decimal = Decimal("0"),
               is_manufactured: bool = False) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", "name")

        price = to_decimal(price, None)
        if price is None or price < 0:
            raise ValidationError("price must be zero or greater", "price")

        stock = to_decimal(stock, None)
        if stock is None or stock < 0:
            raise ValidationError("stock must be zero or greater", "stock")

        cls._validate_sku(sku, actor.company_id)

        product = Product.objects.create(
            company_id=actor.company_id,
            name=name,
            sku=sku or "",
            unit=unit or "un",
            price=price,
            stock=Decimal("0"),
            min_stock=to_decimal(min_stock),
            is_manufactured=bool(is_manufactured),
        )

        if stock > 0:
            from .stock_service import StockLedgerService
            from stock.models import StockMovement
            StockLedgerService.adjust(
                product.id, stock, StockMovement.MovementType.ADJUSTMENT_PLUS, actor,
                reference_type="opening_balance", notes="Opening balance",
            )
            product.refresh_from_db()

        return success_response({
            "id": product.id,
            "product": cls.serialize(product),
        }, f"Product {product.name} created")

    @classmethod
    @transaction.atomic
    def update(cls, product_id: int, actor: Actor, **kwargs) -> Dict[str, Any]:
        product = cls.get_or_404(product_id, actor.company_id)

        if "stock" in kwargs:
            raise ValidationError("Use the stock adjustment endpoint to change stock", "stock")

        if "sku" in kwargs and kwargs["sku"] != product.sku:
            cls._validate_sku(kwargs["sku"], actor.company_id, exclude_id=product.id)

        if "name" in kwargs and not (kwargs["name"] or "").strip():
            raise ValidationError("name is required", "name")

        update_fields = ["updated_at"]
        direct_fields = ["name", "sku", "unit", "price", "min_stock", "is_manufactured", "is_active"]

        for field in direct_fields:
            if field in kwargs:
                value = kwargs[field]
                if field in ["price", "min_stock"]:
                    value = to_decimal(value, None)
                    if value is None or value < 0:
                        raise ValidationError(f"{field} must be zero or greater", field)
                setattr(product, field, value)
                update_fields.append(field)

        product.save(update_fields=update_fields)

        return success_response({
            "product": cls.serialize(product),
        }, "Product updated")
