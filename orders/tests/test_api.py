"""
HTTP tests for /api/orders/, /api/sales/ and /api/clients/.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from orders.models import Order, Sale
from orders.services.order_service import OrderService
from stock.models import PackagingEntry


@pytest.mark.django_db
class TestOrdersAPI:

    def test_create_route_and_read(self, api_client, make_product):
        jar = make_product(name="Jar", stock="10", price="3.00")

        response = api_client.post("/api/orders/", {
            "client_name": "ACME",
            "items": [{"product_id": jar.id, "quantity": 4}],
        }, format="json")
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        order_id = body["data"]["id"]
        assert body["data"]["order"]["total_amount"] == "12.00"

        response = api_client.post(f"/api/orders/{order_id}/route/", {}, format="json")
        assert response.status_code == 200
        assert response.json()["data"]["status"] == Order.Status.IN_PACKAGING

        response = api_client.get(f"/api/orders/{order_id}/")
        order = response.json()["data"]["order"]
        assert order["status"] == Order.Status.IN_PACKAGING
        assert len(order["packaging"]) == 1

        jar.refresh_from_db()
        assert jar.stock == Decimal("6")

    def test_validation_error_shape(self, api_client):
        response = api_client.post("/api/orders/", {"items": []}, format="json")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "validation_error"
        assert body["error"]["details"]["field"] == "items"

    def test_unknown_order(self, api_client):
        response = api_client.get("/api/orders/999999/")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_unexpected_error_is_a_server_error(self, api_client, make_product, make_order):
        order = make_order((make_product(name="Jar"), "1"))

        with patch.object(OrderService, "get_order", side_effect=RuntimeError("database went away")):
            response = api_client.get(f"/api/orders/{order.id}/")

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": {"code": "server_error", "message": "Internal server error", "details": {}},
        }

    def test_cancel(self, api_client, make_product, make_order):
        jar = make_product(name="Jar", stock="10")
        order = make_order((jar, "4"))
        api_client.post(f"/api/orders/{order.id}/route/", {}, format="json")

        response = api_client.post(f"/api/orders/{order.id}/cancel/", {"reason": "duplicate"}, format="json")

        assert response.status_code == 200
        assert response.json()["data"]["order"]["status"] == Order.Status.CANCELLED
        jar.refresh_from_db()
        assert jar.stock == Decimal("10")

    def test_invalid_transition(self, api_client, make_product, make_order):
        order = make_order((make_product(name="Jar"), "1"))

        response = api_client.post(f"/api/orders/{order.id}/deliver/", {}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "business_rule"

    def test_unknown_action(self, api_client, make_product, make_order):
        order = make_order((make_product(name="Jar"), "1"))

        response = api_client.post(f"/api/orders/{order.id}/teleport/", {}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_action"

    def test_list_filters_by_status(self, api_client, make_product, make_order):
        jar = make_product(name="Jar")
        make_order((jar, "1"))
        cancelled = make_order((jar, "1"))
        cancelled.status = Order.Status.CANCELLED
        cancelled.save()

        response = api_client.get("/api/orders/", {"status": "cancelled"})

        assert response.json()["data"]["pagination"]["total_items"] == 1


@pytest.mark.django_db
class TestSalesAPI:

    def test_sale_flow(self, api_client, make_product, make_order):
        jar = make_product(name="Jar", stock="10", price="5.00")
        order = make_order((jar, "2"))
        api_client.post(f"/api/orders/{order.id}/route/", {}, format="json")
        entry = PackagingEntry.objects.get()
        for action in ("start", "complete", "approve"):
            response = api_client.post(f"/api/stock/packaging/{entry.id}/{action}/", {}, format="json")
            assert response.status_code == 200, action
        assert response.json()["order_settled"] is True

        response = api_client.get("/api/sales/")
        sales = response.json()["data"]["sales"]
        assert len(sales) == 1
        assert sales[0]["total_amount"] == "10.00"

        sale_id = sales[0]["id"]
        response = api_client.post(f"/api/sales/{sale_id}/confirm/", {}, format="json")
        assert response.status_code == 200
        assert response.json()["data"]["sale"]["status"] == Sale.Status.CONFIRMED

        response = api_client.post(f"/api/sales/{sale_id}/invoice/", {"invoice_number": "NF-77"}, format="json")
        assert response.json()["data"]["sale"]["invoice_number"] == "NF-77"

        response = api_client.get(f"/api/sales/{sale_id}/")
        assert response.json()["data"]["sale"]["status"] == Sale.Status.INVOICED


@pytest.mark.django_db
class TestClientsAPI:

    def test_create_and_list(self, api_client):
        response = api_client.post("/api/clients/", {"name": "ACME", "email": "buy@acme.test"}, format="json")
        assert response.status_code == 201

        response = api_client.get("/api/clients/", {"search": "acme"})
        assert [c["name"] for c in response.json()["data"]["clients"]] == ["ACME"]
