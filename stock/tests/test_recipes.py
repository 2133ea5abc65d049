"""
Tests for recipes and ingredient deduction.

Validates:
- set_recipe replaces lines and validates input before writing
- deduct_ingredients is linear in the produced quantity, floored at zero
- a failed deduction leaves every ingredient untouched
"""

from decimal import Decimal

import pytest

from stock.models import RecipeIngredient, StockMovement
from stock.services.base_service import ValidationError, NotFoundError
from stock.services.recipe_service import RecipeService


@pytest.mark.django_db
class TestSetRecipe:

    def test_replaces_existing_lines(self, make_product, make_recipe, actor):
        bread = make_product(name="Bread", is_manufactured=True)
        flour = make_product(name="Flour")
        salt = make_product(name="Salt")
        make_recipe(bread, [(flour, "1")])

        result = RecipeService.set_recipe(
            bread.id, [{"ingredient_id": salt.id, "quantity": "0.02"}], actor
        )

        assert [line["ingredient_name"] for line in result["ingredients"]] == ["Salt"]
        assert RecipeIngredient.objects.filter(product=bread).count() == 1

    def test_rejects_self_reference(self, make_product, actor):
        bread = make_product(name="Bread", is_manufactured=True)

        with pytest.raises(ValidationError):
            RecipeService.set_recipe(bread.id, [{"ingredient_id": bread.id, "quantity": "1"}], actor)

    def test_rejects_duplicates_without_writing(self, make_product, make_recipe, actor):
        bread = make_product(name="Bread", is_manufactured=True)
        flour = make_product(name="Flour")
        make_recipe(bread, [(flour, "1")])

        with pytest.raises(ValidationError):
            RecipeService.set_recipe(bread.id, [
                {"ingredient_id": flour.id, "quantity": "1"},
                {"ingredient_id": flour.id, "quantity": "2"},
            ], actor)

        assert RecipeIngredient.objects.get(product=bread).quantity == Decimal("1")

    def test_rejects_non_positive_quantity(self, make_product, actor):
        bread = make_product(name="Bread", is_manufactured=True)
        flour = make_product(name="Flour")

        with pytest.raises(ValidationError):
            RecipeService.set_recipe(bread.id, [{"ingredient_id": flour.id, "quantity": "0"}], actor)

    def test_unknown_ingredient(self, make_product, actor):
        bread = make_product(name="Bread", is_manufactured=True)

        with pytest.raises(NotFoundError):
            RecipeService.set_recipe(bread.id, [{"ingredient_id": 999999, "quantity": "1"}], actor)


@pytest.mark.django_db
class TestDeductIngredients:

    def test_deduction_is_linear(self, make_product, make_recipe, actor):
        cake = make_product(name="Cake", is_manufactured=True)
        flour = make_product(name="Flour", stock="100")
        sugar = make_product(name="Sugar", stock="10")
        make_recipe(cake, [(flour, "2"), (sugar, "0.5")])

        assert RecipeService.deduct_ingredients(cake.id, Decimal("4"), actor) is True

        flour.refresh_from_db()
        sugar.refresh_from_db()
        assert flour.stock == Decimal("92")
        assert sugar.stock == Decimal("8")
        assert StockMovement.objects.filter(movement_type=StockMovement.MovementType.PRODUCTION_OUT).count() == 2

    def test_deduction_floors_at_zero(self, make_product, make_recipe, actor):
        cake = make_product(name="Cake", is_manufactured=True)
        flour = make_product(name="Flour", stock="4")
        sugar = make_product(name="Sugar", stock="10")
        make_recipe(cake, [(flour, "2"), (sugar, "0.5")])

        assert RecipeService.deduct_ingredients(cake.id, Decimal("3"), actor) is True

        flour.refresh_from_db()
        sugar.refresh_from_db()
        assert flour.stock == Decimal("0")
        assert sugar.stock == Decimal("8.5")

    def test_no_recipe_is_a_no_op(self, make_product, actor):
        cake = make_product(name="Cake", is_manufactured=True)

        assert RecipeService.deduct_ingredients(cake.id, Decimal("3"), actor) is True
        assert not StockMovement.objects.exists()

    def test_failure_rolls_back_every_line(self, make_product, make_recipe, actor, fulfillment_settings):
        fulfillment_settings.clamp_negative_stock = False
        fulfillment_settings.save()
        cake = make_product(name="Cake", is_manufactured=True)
        sugar = make_product(name="Sugar", stock="10")
        flour = make_product(name="Flour", stock="1")
        make_recipe(cake, [(sugar, "1"), (flour, "2")])

        assert RecipeService.deduct_ingredients(cake.id, Decimal("3"), actor) is False

        sugar.refresh_from_db()
        flour.refresh_from_db()
        assert sugar.stock == Decimal("10")
        assert flour.stock == Decimal("1")
        assert not StockMovement.objects.exists()
