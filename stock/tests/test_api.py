"""
HTTP tests for /api/stock/.
"""

from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from stock.models import Product, ProductionEntry


@pytest.mark.django_db
class TestProductsAPI:

    def test_requires_authentication(self, db):
        response = APIClient().get("/api/stock/products/")

        assert response.status_code in (401, 403)

    def test_create_and_get(self, api_client):
        response = api_client.post("/api/stock/products/", {
            "name": "Flour", "sku": "FL-1", "unit": "kg", "price": "3.20", "stock": "25",
        }, format="json")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        product_id = body["id"]
        assert Product.objects.get(id=product_id).stock == Decimal("25")

        response = api_client.get(f"/api/stock/products/{product_id}/")
        assert response.status_code == 200
        assert response.json()["product"]["sku"] == "FL-1"

    def test_duplicate_sku(self, api_client, make_product):
        make_product(name="Flour", sku="FL-1")

        response = api_client.post("/api/stock/products/", {"name": "Other", "sku": "FL-1"}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_update_refuses_stock(self, api_client, make_product):
        product = make_product(name="Flour", stock="5")

        response = api_client.put(f"/api/stock/products/{product.id}/", {"stock": "50"}, format="json")

        assert response.status_code == 400
        product.refresh_from_db()
        assert product.stock == Decimal("5")

    def test_adjust(self, api_client, make_product):
        product = make_product(name="Flour", stock="5")

        response = api_client.post(
            f"/api/stock/products/{product.id}/adjust/", {"quantity": "-2", "notes": "spilled"}, format="json"
        )

        assert response.status_code == 201
        assert Decimal(response.json()["stock"]) == Decimal("3")

    def test_adjust_below_zero_is_refused(self, api_client, make_product):
        product = make_product(name="Flour", stock="1")

        response = api_client.post(f"/api/stock/products/{product.id}/adjust/", {"quantity": "-2"}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "insufficient_stock"

    def test_recipe(self, api_client, make_product):
        bread = make_product(name="Bread", is_manufactured=True)
        flour = make_product(name="Flour")

        response = api_client.put(f"/api/stock/products/{bread.id}/recipe/", {
            "ingredients": [{"ingredient_id": flour.id, "quantity": "0.5"}],
        }, format="json")
        assert response.status_code == 200

        response = api_client.get(f"/api/stock/products/{bread.id}/recipe/")
        assert [i["ingredient_name"] for i in response.json()["ingredients"]] == ["Flour"]

    def test_not_found(self, api_client):
        response = api_client.get("/api/stock/products/999999/")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": {
                "code": "not_found",
                "message": "Product not found: 999999",
                "details": {"resource": "Product", "identifier": "999999"},
            },
        }


@pytest.mark.django_db
class TestShopFloorAPI:

    def test_production_lifecycle(self, api_client, make_product):
        bread = make_product(name="Bread", stock="0", is_manufactured=True)

        response = api_client.post("/api/stock/production/", {
            "product_id": bread.id, "quantity_requested": "3",
        }, format="json")
        assert response.status_code == 201
        entry_id = response.json()["id"]

        for action in ("start", "complete", "approve"):
            response = api_client.post(f"/api/stock/production/{entry_id}/{action}/", {}, format="json")
            assert response.status_code == 200, action

        bread.refresh_from_db()
        assert bread.stock == Decimal("3")
        assert ProductionEntry.objects.get().approved_by == "operator@example.com"

    def test_invalid_transition(self, api_client, make_product):
        bread = make_product(name="Bread", is_manufactured=True)
        entry_id = api_client.post("/api/stock/production/", {
            "product_id": bread.id, "quantity_requested": "3",
        }, format="json").json()["id"]

        response = api_client.post(f"/api/stock/production/{entry_id}/approve/", {}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "business_rule"

    def test_unknown_action(self, api_client, make_product):
        bread = make_product(name="Bread", is_manufactured=True)
        entry_id = api_client.post("/api/stock/production/", {
            "product_id": bread.id, "quantity_requested": "3",
        }, format="json").json()["id"]

        response = api_client.post(f"/api/stock/production/{entry_id}/bake/", {}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_action"

    def test_packaging_list_and_stats(self, api_client, make_product):
        jar = make_product(name="Jar")
        api_client.post("/api/stock/packaging/", {"product_id": jar.id, "quantity_to_package": "2"}, format="json")

        response = api_client.get("/api/stock/packaging/", {"origin": "stock"})
        assert response.json()["pagination"]["total_items"] == 1

        response = api_client.get("/api/stock/packaging/stats/", {"period": "today"})
        assert response.json()["total"] == 1

    def test_packaging_with_non_numeric_order(self, api_client, make_product):
        jar = make_product(name="Jar")

        response = api_client.post("/api/stock/packaging/", {
            "product_id": jar.id, "quantity_to_package": "2", "order_id": "abc",
        }, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"
        assert response.json()["error"]["details"]["field"] == "order_id"

    def test_bad_date_filter(self, api_client):
        response = api_client.get("/api/stock/production/", {"date_from": "yesterday-ish"})

        assert response.status_code == 400


@pytest.mark.django_db
class TestSettingsAPI:

    def test_read_and_update(self, api_client):
        response = api_client.get("/api/stock/settings/")
        assert response.json()["settings"]["clamp_negative_stock"] is True

        response = api_client.put("/api/stock/settings/", {"clamp_negative_stock": False}, format="json")
        assert response.status_code == 200
        assert response.json()["settings"]["clamp_negative_stock"] is False

    def test_unknown_setting(self, api_client):
        response = api_client.put("/api/stock/settings/", {"teleport": True}, format="json")

        assert response.status_code == 400
