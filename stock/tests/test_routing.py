"""
Tests for order routing.

Validates:
- items with enough stock go straight to packaging
- manufactured items short on stock are split between stock and production
- bought-in items short on stock only produce a warning
- routing an order twice never deducts twice
"""

from decimal import Decimal

import pytest

from orders.models import Order, OrderItemTracking
from stock.models import PackagingEntry, ProductionEntry, StockMovement
from stock.services.base_service import BusinessRuleError, NotFoundError
from stock.services.order_service import OrderRoutingService


@pytest.mark.django_db
class TestRouteFromStock:

    def test_enough_stock_goes_to_packaging(self, make_product, make_order, actor):
        product = make_product(name="Jar", stock="10")
        order = make_order((product, "4"))

        result = OrderRoutingService.route_order(order.id, actor)

        product.refresh_from_db()
        order.refresh_from_db()
        assert product.stock == Decimal("6")
        assert order.status == Order.Status.IN_PACKAGING
        assert not ProductionEntry.objects.exists()

        packaging = PackagingEntry.objects.get()
        assert packaging.quantity_to_package == Decimal("4")
        assert packaging.origin == "stock"
        assert packaging.order_id == order.id
        assert packaging.client_name == "ACME"

        tracking = OrderItemTracking.objects.get()
        assert tracking.quantity_from_stock == Decimal("4")
        assert tracking.status == OrderItemTracking.Status.READY_FOR_PACKAGING
        assert result["warnings"] == []

    def test_stock_movement_points_at_the_order(self, make_product, make_order, actor):
        product = make_product(name="Jar", stock="10")
        order = make_order((product, "4"))

        OrderRoutingService.route_order(order.id, actor)

        movement = StockMovement.objects.get()
        assert movement.movement_type == StockMovement.MovementType.SALE_OUT
        assert movement.order_id == order.id
        assert movement.quantity == Decimal("-4")


@pytest.mark.django_db
class TestRouteToProduction:

    def test_partial_stock_is_split(self, make_product, make_order, actor):
        product = make_product(name="Bread", stock="3", is_manufactured=True)
        order = make_order((product, "5"))

        OrderRoutingService.route_order(order.id, actor)

        product.refresh_from_db()
        order.refresh_from_db()
        assert product.stock == Decimal("0")
        assert order.status == Order.Status.IN_PACKAGING

        production = ProductionEntry.objects.get()
        assert production.quantity_requested == Decimal("2")
        assert production.order_item.order_id == order.id

        packaging = PackagingEntry.objects.get()
        assert packaging.quantity_to_package == Decimal("3")
        assert packaging.production_id is None

        tracking = OrderItemTracking.objects.get()
        assert tracking.quantity_from_stock == Decimal("3")
        assert tracking.quantity_from_production == Decimal("2")

    def test_without_split_everything_is_produced(self, make_product, make_order, actor, fulfillment_settings):
        fulfillment_settings.split_partial_stock = False
        fulfillment_settings.save()
        product = make_product(name="Bread", stock="3", is_manufactured=True)
        order = make_order((product, "5"))

        OrderRoutingService.route_order(order.id, actor)

        product.refresh_from_db()
        order.refresh_from_db()
        assert product.stock == Decimal("3")
        assert ProductionEntry.objects.get().quantity_requested == Decimal("5")
        assert not PackagingEntry.objects.exists()
        assert order.status == Order.Status.IN_PRODUCTION

    def test_production_consumes_ingredients(self, make_product, make_recipe, make_order, actor):
        flour = make_product(name="Flour", stock="100")
        bread = make_product(name="Bread", stock="0", is_manufactured=True)
        make_recipe(bread, [(flour, "1")])
        order = make_order((bread, "5"))

        OrderRoutingService.route_order(order.id, actor)

        flour.refresh_from_db()
        order.refresh_from_db()
        assert flour.stock == Decimal("95")
        assert ProductionEntry.objects.get().quantity_requested == Decimal("5")
        assert order.status == Order.Status.IN_PRODUCTION

    def test_ingredient_deduction_can_be_switched_off(self, make_product, make_recipe, make_order, actor,
                                                      fulfillment_settings):
        fulfillment_settings.deduct_ingredients_on_production = False
        fulfillment_settings.save()
        flour = make_product(name="Flour", stock="100")
        bread = make_product(name="Bread", stock="0", is_manufactured=True)
        make_recipe(bread, [(flour, "1")])
        order = make_order((bread, "5"))

        OrderRoutingService.route_order(order.id, actor)

        flour.refresh_from_db()
        assert flour.stock == Decimal("100")

    def test_failed_deduction_is_a_warning(self, make_product, make_recipe, make_order, actor,
                                           fulfillment_settings):
        fulfillment_settings.clamp_negative_stock = False
        fulfillment_settings.save()
        flour = make_product(name="Flour", stock="1")
        bread = make_product(name="Bread", stock="0", is_manufactured=True)
        make_recipe(bread, [(flour, "1")])
        order = make_order((bread, "5"))

        result = OrderRoutingService.route_order(order.id, actor)

        flour.refresh_from_db()
        assert flour.stock == Decimal("1")
        assert ProductionEntry.objects.count() == 1
        assert len(result["warnings"]) == 1


@pytest.mark.django_db
class TestRouteShortages:

    def test_bought_in_item_without_stock_warns(self, make_product, make_order, actor):
        product = make_product(name="Bottle", stock="0")
        order = make_order((product, "5"))

        result = OrderRoutingService.route_order(order.id, actor)

        order.refresh_from_db()
        assert order.status == Order.Status.PENDING
        assert not ProductionEntry.objects.exists()
        assert not PackagingEntry.objects.exists()
        assert len(result["warnings"]) == 1
        assert "Bottle" in result["warnings"][0]

    def test_bought_in_item_with_partial_stock_keeps_its_stock(self, make_product, make_order, actor):
        product = make_product(name="Bottle", stock="2")
        order = make_order((product, "5"))

        OrderRoutingService.route_order(order.id, actor)

        product.refresh_from_db()
        assert product.stock == Decimal("2")
        assert not OrderItemTracking.objects.exists()

    def test_short_item_does_not_block_the_rest(self, make_product, make_order, actor):
        bottle = make_product(name="Bottle", stock="0")
        jar = make_product(name="Jar", stock="10")
        order = make_order((bottle, "5"), (jar, "2"))

        result = OrderRoutingService.route_order(order.id, actor)

        order.refresh_from_db()
        assert order.status == Order.Status.IN_PACKAGING
        assert PackagingEntry.objects.count() == 1
        assert len(result["warnings"]) == 1


@pytest.mark.django_db
class TestRouteGuards:

    def test_routing_twice_does_not_deduct_twice(self, make_product, make_order, actor):
        product = make_product(name="Jar", stock="10")
        order = make_order((product, "4"))

        OrderRoutingService.route_order(order.id, actor)
        result = OrderRoutingService.route_order(order.id, actor)

        product.refresh_from_db()
        assert product.stock == Decimal("6")
        assert PackagingEntry.objects.count() == 1
        assert result["messages"] == ["Jar: already routed"]

    def test_rerouting_picks_up_new_stock_for_unrouted_items(self, make_product, make_order, actor):
        bottle = make_product(name="Bottle", stock="0")
        order = make_order((bottle, "5"))
        OrderRoutingService.route_order(order.id, actor)

        bottle.stock = Decimal("5")
        bottle.save()
        OrderRoutingService.route_order(order.id, actor)

        order.refresh_from_db()
        assert order.status == Order.Status.IN_PACKAGING
        assert PackagingEntry.objects.get().quantity_to_package == Decimal("5")

    def test_cannot_route_a_delivered_order(self, make_product, make_order, actor):
        product = make_product(name="Jar", stock="10")
        order = make_order((product, "4"))
        order.status = Order.Status.DELIVERED
        order.save()

        with pytest.raises(BusinessRuleError):
            OrderRoutingService.route_order(order.id, actor)

    def test_unknown_order(self, db, actor):
        with pytest.raises(NotFoundError):
            OrderRoutingService.route_order(999999, actor)

    def test_other_company_cannot_route(self, make_product, make_order, actor):
        product = make_product(name="Jar", stock="10")
        order = make_order((product, "4"))
        actor.company_id = "someone-else"

        with pytest.raises(NotFoundError):
            OrderRoutingService.route_order(order.id, actor)
