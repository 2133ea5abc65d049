"""
Tests for order creation and status changes.
"""

from decimal import Decimal

import pytest

from orders.models import Order, Sale
from orders.services.client_service import ClientService
from orders.services.order_service import OrderService
from orders.services.sale_service import SaleService
from stock.models import PackagingEntry, ProductionEntry, StockMovement
from stock.services.base_service import BusinessRuleError, NotFoundError, ValidationError
from stock.services.order_service import OrderRoutingService
from stock.services.packaging_service import PackagingService


@pytest.mark.django_db
class TestCreateOrder:

    def test_prices_default_to_the_product(self, make_product, actor):
        jar = make_product(name="Jar", price="2.50")
        lid = make_product(name="Lid", price="1.00")

        result = OrderService.create_order(
            actor,
            items=[
                {"product_id": jar.id, "quantity": 4},
                {"product_id": lid.id, "quantity": "2", "unit_price": "0.75"},
            ],
            client_name="ACME",
        )

        order = Order.objects.get(id=result["id"])
        assert order.status == Order.Status.PENDING
        assert order.total_amount == Decimal("11.50")
        assert order.created_by == actor.email
        assert order.order_number.startswith("ORD-")
        assert [i.unit_price for i in order.items.order_by("id")] == [Decimal("2.50"), Decimal("0.75")]

    def test_client_name_comes_from_the_client(self, make_product, actor):
        jar = make_product(name="Jar")
        client = ClientService.create(actor, name="Globex")["id"]

        result = OrderService.create_order(actor, items=[{"product_id": jar.id, "quantity": 1}], client_id=client)

        assert result["order"]["client_name"] == "Globex"
        assert result["order"]["client_id"] == client

    @pytest.mark.parametrize("items", [
        [],
        [{"quantity": 1}],
        [{"product_id": "PRODUCT", "quantity": 0}],
        [{"product_id": "PRODUCT", "quantity": "-1"}],
        [{"product_id": "PRODUCT", "quantity": 1, "unit_price": "-1"}],
    ])
    def test_invalid_items_write_nothing(self, make_product, actor, items):
        jar = make_product(name="Jar")
        items = [
            {k: (jar.id if v == "PRODUCT" else v) for k, v in line.items()}
            for line in items
        ]

        with pytest.raises(ValidationError):
            OrderService.create_order(actor, items=items)

        assert not Order.objects.exists()

    def test_unknown_product(self, db, actor):
        with pytest.raises(NotFoundError):
            OrderService.create_order(actor, items=[{"product_id": 999999, "quantity": 1}])

        assert not Order.objects.exists()

    def test_auto_route_on_create(self, make_product, actor, fulfillment_settings):
        fulfillment_settings.auto_route_on_create = True
        fulfillment_settings.save()
        jar = make_product(name="Jar", stock="10")

        result = OrderService.create_order(actor, items=[{"product_id": jar.id, "quantity": 3}])

        assert result["order"]["status"] == Order.Status.IN_PACKAGING
        assert len(result["routing"]["packaging"]) == 1
        jar.refresh_from_db()
        assert jar.stock == Decimal("7")


@pytest.mark.django_db
class TestChangeStatus:

    def test_cancel_returns_stock(self, make_product, make_order, actor):
        jar = make_product(name="Jar", stock="10")
        order = make_order((jar, "4"))
        OrderRoutingService.route_order(order.id, actor)

        result = OrderService.change_status(order.id, "cancel", actor, reason="client gave up")

        jar.refresh_from_db()
        assert jar.stock == Decimal("10")
        assert result["order"]["status"] == Order.Status.CANCELLED
        assert result["returned_to_stock"] == [{"product_id": jar.id, "quantity": "4.0000"}]
        assert PackagingEntry.objects.get().status == PackagingEntry.Status.REJECTED
        assert StockMovement.objects.filter(movement_type=StockMovement.MovementType.RETURN_IN).count() == 1

    def test_cancel_rejects_open_production(self, make_product, make_order, actor):
        bread = make_product(name="Bread", stock="0", is_manufactured=True)
        order = make_order((bread, "2"))
        OrderRoutingService.route_order(order.id, actor)

        OrderService.change_status(order.id, "cancel", actor)

        assert ProductionEntry.objects.get().status == ProductionEntry.Status.REJECTED

    def test_cancel_a_released_order_cancels_its_sale(self, make_product, make_order, actor):
        jar = make_product(name="Jar", stock="10")
        order = make_order((jar, "4"))
        OrderRoutingService.route_order(order.id, actor)
        entry = PackagingEntry.objects.get()
        PackagingService.start(entry.id, actor)
        PackagingService.complete(entry.id, actor)
        PackagingService.approve(entry.id, actor)

        OrderService.change_status(order.id, "cancel", actor)

        assert Sale.objects.get().status == Sale.Status.CANCELLED

    def test_cannot_cancel_twice(self, make_product, make_order, actor):
        jar = make_product(name="Jar", stock="10")
        order = make_order((jar, "4"))
        OrderService.change_status(order.id, "cancel", actor)

        with pytest.raises(BusinessRuleError):
            OrderService.change_status(order.id, "cancel", actor)

    def test_delivery_follows_sale_confirmation(self, make_product, make_order, actor):
        jar = make_product(name="Jar", stock="10")
        order = make_order((jar, "4"))

        with pytest.raises(BusinessRuleError):
            OrderService.change_status(order.id, "dispatch", actor)

        OrderRoutingService.route_order(order.id, actor)
        entry = PackagingEntry.objects.get()
        PackagingService.start(entry.id, actor)
        PackagingService.complete(entry.id, actor)
        PackagingService.approve(entry.id, actor)
        SaleService.confirm(Sale.objects.get().id, actor)

        OrderService.change_status(order.id, "dispatch", actor)
        result = OrderService.change_status(order.id, "deliver", actor)

        assert result["order"]["status"] == Order.Status.DELIVERED

        with pytest.raises(BusinessRuleError):
            OrderService.change_status(order.id, "cancel", actor)

    def test_mark_packaged(self, make_product, make_order, actor):
        jar = make_product(name="Jar", stock="10")
        order = make_order((jar, "4"))
        OrderRoutingService.route_order(order.id, actor)

        result = OrderService.change_status(order.id, "mark_packaged", actor)

        assert result["order"]["status"] == Order.Status.PACKAGED

    def test_unknown_event(self, make_product, make_order, actor):
        order = make_order((make_product(name="Jar"), "1"))

        with pytest.raises(ValidationError):
            OrderService.change_status(order.id, "teleport", actor)


@pytest.mark.django_db
class TestQueries:

    def test_get_order_includes_fulfillment(self, make_product, make_order, actor):
        bread = make_product(name="Bread", stock="3", is_manufactured=True)
        order = make_order((bread, "5"))
        OrderRoutingService.route_order(order.id, actor)

        data = OrderService.get_order(order.id, actor.company_id)["order"]

        assert len(data["items"]) == 1
        assert data["items"][0]["tracking"]["quantity_from_stock"] == "3.0000"
        assert len(data["production"]) == 1
        assert len(data["packaging"]) == 1
        assert data["sale"] is None

    def test_list_orders(self, make_product, make_order, actor):
        jar = make_product(name="Jar")
        make_order((jar, "1"), client_name="ACME")
        make_order((jar, "1"), (jar, "2"), client_name="Globex")

        result = OrderService.list_orders(actor.company_id, search="glob")

        assert result["pagination"]["total_items"] == 1
        assert result["orders"][0]["items_count"] == 2

    def test_clients(self, db, actor):
        ClientService.create(actor, name="ACME", document="12.345")
        ClientService.create(actor, name="Globex")

        assert ClientService.list(actor.company_id, search="12.3")["pagination"]["total_items"] == 1

        with pytest.raises(ValidationError):
            ClientService.create(actor, name="  ")
