import logging
from typing import Dict, Any, List
from decimal import Decimal
from django.db import transaction, DatabaseError

from stock.models import Product, RecipeIngredient, StockMovement
from stock.services.base_service import (
    Actor, BaseService, ServiceError, success_response,
    ValidationError, NotFoundError, require_positive
)

logger = logging.getLogger(__name__)


class RecipeService(BaseService):
    model = RecipeIngredient

    @classmethod
    def serialize_line(cls, line: RecipeIngredient) -> Dict[str, Any]:
        return {
            "id": line.id,
            "ingredient_id": line.ingredient_id,
            "ingredient_name": line.ingredient.name,
            "ingredient_unit": line.ingredient.unit,
            "quantity": str(line.quantity),
            "ingredient_stock": str(line.ingredient.stock),
        }

    @classmethod
    def serialize_lines(cls, product: Product) -> List[Dict[str, Any]]:
        return [
            cls.serialize_line(line)
            for line in product.recipe_lines.select_related("ingredient")
        ]

    @classmethod
    def get_recipe(cls, product_id: int, company_id: str) -> Dict[str, Any]:
        product = Product.objects.for_company(company_id).filter(id=product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)

        return success_response({
            "product_id": product.id,
            "product_name": product.name,
            "is_manufactured": product.is_manufactured,
            "ingredients": cls.serialize_lines(product),
        })

    @classmethod
    @transaction.atomic
    def set_recipe(cls, product_id: int, ingredients: List[Dict], actor: Actor) -> Dict[str, Any]:
        """Replace the whole recipe of a product."""
        product = Product.objects.for_company(actor.company_id).filter(id=product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)

        if not isinstance(ingredients, list):
            raise ValidationError("ingredients must be a list", "ingredients")

        lines = []
        seen = set()
        for idx, raw in enumerate(ingredients):
            try:
                ingredient_id = int(raw.get("ingredient_id"))
            except (AttributeError, TypeError, ValueError):
                raise ValidationError(f"Line {idx}: ingredient_id is required", f"ingredients[{idx}].ingredient_id")
            if ingredient_id == product.id:
                raise ValidationError("A product cannot be an ingredient of itself", f"ingredients[{idx}].ingredient_id")
            if ingredient_id in seen:
                raise ValidationError(f"Ingredient {ingredient_id} listed twice", f"ingredients[{idx}].ingredient_id")
            seen.add(ingredient_id)

            ingredient = Product.objects.for_company(actor.company_id).filter(id=ingredient_id).first()
            if not ingredient:
                raise NotFoundError("Ingredient", ingredient_id)

            quantity = require_positive(raw.get("quantity"), f"ingredients[{idx}].quantity")
            lines.append((ingredient, quantity))

        product.recipe_lines.all().delete()
        RecipeIngredient.objects.bulk_create([
            RecipeIngredient(product=product, ingredient=ingredient, quantity=quantity)
            for ingredient, quantity in lines
        ])

        logger.info("Recipe for %s replaced with %d line(s) by %s", product.name, len(lines), actor.email)

        return success_response({
            "product_id": product.id,
            "ingredients": cls.serialize_lines(product),
        }, "Recipe saved")

    @classmethod
    def deduct_ingredients(cls,
                           product_id: int,
                           quantity_produced: Decimal,
                           actor: Actor,
                           reference_type: str = "production",
                           reference_id: int = None) -> bool:
        """
        Consume recipe ingredients for `quantity_produced` units of a product.

        Each ingredient loses per-unit quantity x quantity_produced. Runs in its
        own savepoint: on any failure nothing is deducted and False is returned,
        so the caller can warn without aborting its own work. A product without
        a recipe trivially succeeds.
        """
        from .stock_service import StockLedgerService

        lines = list(
            RecipeIngredient.objects.filter(product_id=product_id).select_related("ingredient", "product")
        )
        if not lines:
            return True

        try:
            with transaction.atomic():
                for line in lines:
                    to_deduct = line.quantity * Decimal(str(quantity_produced))
                    StockLedgerService.adjust(
                        line.ingredient_id,
                        to_deduct,
                        StockMovement.MovementType.PRODUCTION_OUT,
                        actor,
                        reference_type=reference_type,
                        reference_id=reference_id,
                        notes=f"Ingredient for {quantity_produced} x {line.product.name}",
                    )
        except (ServiceError, DatabaseError):
            logger.exception(
                "Ingredient deduction failed for product %s x %s", product_id, quantity_produced
            )
            return False

        return True
